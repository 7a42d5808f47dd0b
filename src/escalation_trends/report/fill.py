from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from escalation_trends.config import FillConfig
from escalation_trends.report.llm import LLMClient, LLMError
from escalation_trends.report.records import Record, RecordTable, is_blank
from escalation_trends.utils.rand import mock_confidence, pick_label, round_half_up


class FillMode(str, Enum):
    MIRROR = "mirror"
    MOCK = "mock"
    EXTERNAL = "external"


@dataclass
class FillStats:
    mode: str
    rows_total: int = 0
    rows_filled: int = 0
    issue_filled: int = 0
    cause_filled: int = 0
    model_calls: int = 0
    model_failures: int = 0
    added_columns: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "rows_total": self.rows_total,
            "rows_filled": self.rows_filled,
            "issue_filled": self.issue_filled,
            "cause_filled": self.cause_filled,
            "model_calls": self.model_calls,
            "model_failures": self.model_failures,
            "added_columns": list(self.added_columns),
        }


def build_classification_prompt(
    summary: Any,
    description: Any,
    issue_types: Sequence[str],
    root_causes: Sequence[str],
) -> str:
    return (
        "You are a support triage AI. From the text, output JSON with fields:\n"
        "{\n"
        f'  "issueType": "one of: {", ".join(issue_types)}",\n'
        '  "issueConfidence": 0 to 1,\n'
        f'  "rootCause": "one of: {", ".join(root_causes)}",\n'
        '  "rootConfidence": 0 to 1\n'
        "}\n\n"
        f"Summary: {_text(summary)}\n"
        f"Description: {_text(description)}"
    )


def classify_record(
    client: LLMClient,
    summary: Any,
    description: Any,
    fill_config: FillConfig,
    temperature: float = 0.0,
) -> Dict[str, Any]:
    """Ask the model for issue type and root cause; raises ``LLMError``."""
    prompt = build_classification_prompt(
        summary,
        description,
        fill_config.allowed_issue_types,
        fill_config.allowed_root_causes,
    )
    return client.json_complete(prompt, temperature=temperature)


def fill_records(
    table: RecordTable,
    fill_config: FillConfig,
    *,
    rng: random.Random,
    client: Optional[LLMClient] = None,
    temperature: float = 0.0,
    logger: Optional[logging.Logger] = None,
) -> FillStats:
    """Populate blank classification labels in place.

    A label that already holds a value is never touched. Without a client
    the external mode behaves exactly like mock.
    """
    mode = FillMode(fill_config.mode)
    stats = FillStats(mode=mode.value, rows_total=len(table))
    if not table.records:
        return stats

    stats.added_columns = table.ensure_columns(
        table.columns.classification_columns()
    )
    if stats.added_columns and logger:
        logger.info("Declared classification columns: %s", stats.added_columns)

    use_model = mode is FillMode.EXTERNAL and client is not None
    for record in table.records:
        needs_issue = is_blank(record.issue_type)
        needs_cause = is_blank(record.root_cause)
        if not needs_issue and not needs_cause:
            continue

        if mode is FillMode.MIRROR:
            _fill_mirror(table, record, fill_config, rng, needs_issue, needs_cause)
        elif use_model:
            prediction = _predict(
                client, record, fill_config, temperature, stats, logger
            )
            _fill_from_prediction(
                record, prediction, fill_config, rng, needs_issue, needs_cause
            )
        else:
            _fill_mock(record, fill_config, rng, needs_issue, needs_cause)

        stats.rows_filled += 1
        stats.issue_filled += int(needs_issue)
        stats.cause_filled += int(needs_cause)

    if logger:
        logger.info(
            "Filled %d of %d rows using %s mode",
            stats.rows_filled,
            stats.rows_total,
            mode.value,
        )
    return stats


def _fill_mirror(
    table: RecordTable,
    record: Record,
    fill_config: FillConfig,
    rng: random.Random,
    needs_issue: bool,
    needs_cause: bool,
) -> None:
    fallback = fill_config.mirror_fallback_confidence
    if needs_issue:
        source = table.value(record, fill_config.source_issue_field)
        if not _truthy(source):
            source = pick_label(rng, fill_config.allowed_issue_types)
        record.issue_type = source
        record.issue_type_confidence = (
            record.issue_type_confidence
            if _truthy(record.issue_type_confidence)
            else fallback
        )
    if needs_cause:
        source = table.value(record, fill_config.source_cause_field)
        if not _truthy(source):
            source = pick_label(rng, fill_config.allowed_root_causes)
        record.root_cause = source
        record.root_cause_confidence = (
            record.root_cause_confidence
            if _truthy(record.root_cause_confidence)
            else fallback
        )


def _fill_mock(
    record: Record,
    fill_config: FillConfig,
    rng: random.Random,
    needs_issue: bool,
    needs_cause: bool,
) -> None:
    if needs_issue:
        record.issue_type = pick_label(rng, fill_config.allowed_issue_types)
        record.issue_type_confidence = mock_confidence(rng)
    if needs_cause:
        record.root_cause = pick_label(rng, fill_config.allowed_root_causes)
        record.root_cause_confidence = mock_confidence(rng)


def _predict(
    client: LLMClient,
    record: Record,
    fill_config: FillConfig,
    temperature: float,
    stats: FillStats,
    logger: Optional[logging.Logger],
) -> Optional[Dict[str, Any]]:
    stats.model_calls += 1
    try:
        return classify_record(
            client, record.summary, record.description, fill_config, temperature
        )
    except LLMError as exc:
        stats.model_failures += 1
        if logger:
            logger.warning(
                "Classification failed for row %d: %s", record.row_number, exc
            )
        return None


def _fill_from_prediction(
    record: Record,
    prediction: Optional[Dict[str, Any]],
    fill_config: FillConfig,
    rng: random.Random,
    needs_issue: bool,
    needs_cause: bool,
) -> None:
    prediction = prediction or {}
    if needs_issue:
        record.issue_type, record.issue_type_confidence = _pick_from_prediction(
            prediction,
            "issueType",
            "issueConfidence",
            fill_config.allowed_issue_types,
            rng,
        )
    if needs_cause:
        record.root_cause, record.root_cause_confidence = _pick_from_prediction(
            prediction,
            "rootCause",
            "rootConfidence",
            fill_config.allowed_root_causes,
            rng,
        )


def _pick_from_prediction(
    prediction: Dict[str, Any],
    label_key: str,
    confidence_key: str,
    labels: Sequence[str],
    rng: random.Random,
) -> Tuple[Any, int]:
    label = prediction.get(label_key)
    if not _truthy(label):
        label = pick_label(rng, labels)
    confidence = _scaled_confidence(prediction.get(confidence_key))
    if confidence is None:
        confidence = mock_confidence(rng)
    return label, confidence


def _scaled_confidence(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return round_half_up(value * 100)


def _truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


__all__ = [
    "FillMode",
    "FillStats",
    "build_classification_prompt",
    "classify_record",
    "fill_records",
]

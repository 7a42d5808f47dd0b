from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from escalation_trends.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from escalation_trends.report.fill import (
    FillMode,
    build_classification_prompt,
    fill_records,
)
from escalation_trends.report.llm import LLMClient, MockProvider
from escalation_trends.report.records import RecordTable
from escalation_trends.utils.rand import make_rng

AI_COLUMNS = [
    "AI Issue Type",
    "AI Issue Type Confidence",
    "AI Root Cause",
    "AI Root Cause Confidence",
]


def _config(**fill_overrides: Any) -> AppConfig:
    overrides = {f"fill.{key}": value for key, value in fill_overrides.items()}
    return load_config(DEFAULT_CONFIG_PATH, None, env={}, cli_overrides=overrides)


def _table(rows: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> RecordTable:
    return RecordTable.from_rows(headers or list(rows[0].keys()), rows)


def _client(provider: MockProvider) -> LLMClient:
    return LLMClient(provider=provider, model="mock-model", max_output_tokens=64)


def _row(**values: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "Created": "2024-03-01",
        "Summary": "Label missing",
        "Description": "Item page shows no label",
    }
    for column in AI_COLUMNS:
        row[column] = None
    row.update(values)
    return row


def test_mock_fill_populates_only_blank_labels() -> None:
    config = _config()
    table = _table(
        [
            _row(**{"AI Issue Type": "Photo Update", "AI Issue Type Confidence": 80}),
            _row(),
        ]
    )

    stats = fill_records(table, config.fill, rng=make_rng(3))

    kept, filled = table.records
    assert kept.issue_type == "Photo Update"
    assert kept.issue_type_confidence == 80
    assert kept.root_cause in config.fill.allowed_root_causes
    assert 30 <= kept.root_cause_confidence <= 99
    assert filled.issue_type in config.fill.allowed_issue_types
    assert filled.root_cause in config.fill.allowed_root_causes
    assert stats.rows_filled == 2
    assert stats.issue_filled == 1
    assert stats.cause_filled == 2
    assert stats.added_columns == []


def test_fill_declares_missing_classification_columns_in_order() -> None:
    config = _config()
    table = _table([{"Created": "2024-03-01", "Summary": "Broken photo"}])

    stats = fill_records(table, config.fill, rng=make_rng(1))

    assert stats.added_columns == AI_COLUMNS
    assert table.headers == ["Created", "Summary"] + AI_COLUMNS
    row = table.to_rows()[0]
    assert row["AI Issue Type"] in config.fill.allowed_issue_types
    assert row["AI Root Cause"] in config.fill.allowed_root_causes


def test_fill_skips_tables_without_rows() -> None:
    config = _config()
    table = RecordTable.from_rows(["Created", "Summary"], [])

    stats = fill_records(table, config.fill, rng=make_rng(1))

    assert stats.rows_total == 0
    assert stats.added_columns == []
    assert table.headers == ["Created", "Summary"]


def test_second_fill_is_a_no_op() -> None:
    config = _config()
    table = _table([_row(), _row(), _row()])
    fill_records(table, config.fill, rng=make_rng(10))
    snapshot = table.to_rows()

    stats = fill_records(table, config.fill, rng=make_rng(11))

    assert stats.rows_filled == 0
    assert table.to_rows() == snapshot


def test_seeded_mock_fill_is_reproducible() -> None:
    config = _config()
    first = _table([_row() for _ in range(5)])
    second = _table([_row() for _ in range(5)])

    fill_records(first, config.fill, rng=make_rng(99))
    fill_records(second, config.fill, rng=make_rng(99))

    assert first.to_rows() == second.to_rows()


def test_mirror_fill_copies_source_fields_with_confidence_fallback() -> None:
    config = _config(mode="mirror")
    table = _table(
        [
            _row(
                **{
                    "Issue Type (MNSD)": "Item Onboarding",
                    "Root Cause": "Human Error",
                    "AI Issue Type Confidence": 0,
                    "AI Root Cause Confidence": 55,
                }
            ),
            _row(**{"Issue Type (MNSD)": "", "Root Cause": None}),
        ]
    )

    fill_records(table, config.fill, rng=make_rng(5))

    mirrored, fallback = table.records
    assert mirrored.issue_type == "Item Onboarding"
    assert mirrored.issue_type_confidence == 90
    assert mirrored.root_cause == "Human Error"
    assert mirrored.root_cause_confidence == 55
    assert fallback.issue_type in config.fill.allowed_issue_types
    assert fallback.issue_type_confidence == 90
    assert fallback.root_cause in config.fill.allowed_root_causes
    assert fallback.root_cause_confidence == 90


def test_external_mode_without_client_behaves_like_mock() -> None:
    config = _config(mode="external")
    external = _table([_row() for _ in range(4)])
    mock = _table([_row() for _ in range(4)])

    stats = fill_records(external, config.fill, rng=make_rng(8), client=None)
    fill_records(mock, _config().fill, rng=make_rng(8))

    assert stats.mode == FillMode.EXTERNAL.value
    assert stats.model_calls == 0
    assert external.to_rows() == mock.to_rows()


def test_external_mode_uses_model_prediction() -> None:
    config = _config(mode="external")
    provider = MockProvider(
        response={
            "content": {
                "issueType": "Missing Records",
                "issueConfidence": 0.875,
                "rootCause": "Human Error",
                "rootConfidence": 0.42,
            }
        }
    )
    table = _table(
        [
            _row(),
            _row(
                **{
                    "AI Issue Type": "Other",
                    "AI Issue Type Confidence": 61,
                    "AI Root Cause": "Other",
                    "AI Root Cause Confidence": 62,
                }
            ),
            _row(**{"AI Issue Type": "Photo Update", "AI Issue Type Confidence": 70}),
        ]
    )

    stats = fill_records(table, config.fill, rng=make_rng(1), client=_client(provider))

    first, untouched, partial = table.records
    assert (first.issue_type, first.issue_type_confidence) == ("Missing Records", 88)
    assert (first.root_cause, first.root_cause_confidence) == ("Human Error", 42)
    assert untouched.issue_type_confidence == 61
    assert partial.issue_type == "Photo Update"
    assert partial.issue_type_confidence == 70
    assert partial.root_cause == "Human Error"
    assert provider._called == 2
    assert stats.model_calls == 2
    assert stats.model_failures == 0

    payload = provider.payloads[0]
    assert payload["response_format"] == "json"
    assert payload["temperature"] == 0.0
    assert "Summary: Label missing" in payload["prompt"]
    assert "Description: Item page shows no label" in payload["prompt"]
    assert "Data Inconsistency" in payload["prompt"]


def test_external_failure_falls_back_per_field() -> None:
    config = _config(mode="external")
    provider = MockProvider(response={}, fail=True)
    table = _table([_row()])

    stats = fill_records(table, config.fill, rng=make_rng(2), client=_client(provider))

    record = table.records[0]
    assert record.issue_type in config.fill.allowed_issue_types
    assert 30 <= record.issue_type_confidence <= 99
    assert record.root_cause in config.fill.allowed_root_causes
    assert 30 <= record.root_cause_confidence <= 99
    assert stats.model_failures == 1


@pytest.mark.parametrize(
    "content",
    [
        {"issueType": "Photo Update"},
        {"issueType": "Photo Update", "rootConfidence": "n/a"},
        '{"issueType": "Photo Update"}',
    ],
)
def test_partial_prediction_falls_back_for_missing_fields(content: Any) -> None:
    config = _config(mode="external")
    provider = MockProvider(response={"content": content})
    table = _table([_row()])

    fill_records(table, config.fill, rng=make_rng(4), client=_client(provider))

    record = table.records[0]
    assert record.issue_type == "Photo Update"
    assert 30 <= record.issue_type_confidence <= 99
    assert record.root_cause in config.fill.allowed_root_causes
    assert 30 <= record.root_cause_confidence <= 99


def test_classification_prompt_lists_allowed_labels() -> None:
    prompt = build_classification_prompt(None, "text", ["A", "B"], ["X", "Y"])

    assert '"issueType": "one of: A, B"' in prompt
    assert '"rootCause": "one of: X, Y"' in prompt
    assert prompt.endswith("Summary: \nDescription: text")

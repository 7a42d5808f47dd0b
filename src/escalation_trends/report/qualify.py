from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from escalation_trends.report.parsing import (
    ParsedDate,
    format_parsed,
    is_valid_date,
    parse_confidence,
    parse_created,
)
from escalation_trends.report.records import Record

FAIL_MARK = "❌"


class WindowVerdict(str, Enum):
    RECENT = "Recent"
    OLD = "Old"


class ReasonCode(str, Enum):
    """Outcome of the confidence half of qualification, in precedence order."""

    MISSING_BOTH = "Missing both confidences"
    INVALID_ISSUE = "Invalid issue confidence"
    INVALID_ROOT = "Invalid root confidence"
    BOTH_BELOW = "Both below threshold"
    ISSUE_BELOW = "Issue confidence below threshold"
    ROOT_BELOW = "Root confidence below threshold"
    PASS = "✅"

    @property
    def passed(self) -> bool:
        return self is ReasonCode.PASS

    @property
    def display(self) -> str:
        if self.passed:
            return self.value
        return f"{FAIL_MARK} {self.value}"


@dataclass(frozen=True)
class Qualification:
    included: bool
    window: WindowVerdict
    reason: ReasonCode
    created: ParsedDate
    issue_confidence: Optional[float]
    root_confidence: Optional[float]


@dataclass(frozen=True)
class DebugEntry:
    row_number: int
    raw_created: Any
    parsed_created: ParsedDate
    summary: str
    issue_type: str
    issue_confidence: Optional[float]
    root_cause: str
    root_confidence: Optional[float]
    window: WindowVerdict
    reason: ReasonCode

    @property
    def parsed_iso(self) -> str:
        return format_parsed(self.parsed_created)

    def as_row(self) -> Dict[str, Any]:
        return {
            "Row #": self.row_number,
            "Raw Created": self.raw_created,
            "Parsed ISO": self.parsed_iso,
            "Summary": self.summary,
            "Issue Type": self.issue_type,
            "Issue Conf": self.issue_confidence,
            "Root Cause": self.root_cause,
            "Root Conf": self.root_confidence,
            "Date Window": self.window.value,
            "Confidence Filter": self.reason.display,
        }


def compute_cutoff(now: datetime, days_back: int) -> datetime:
    return now - timedelta(days=days_back)


def reason_for(
    issue_confidence: Optional[float],
    root_confidence: Optional[float],
    threshold: float,
) -> ReasonCode:
    if issue_confidence is None and root_confidence is None:
        return ReasonCode.MISSING_BOTH
    if issue_confidence is None:
        return ReasonCode.INVALID_ISSUE
    if root_confidence is None:
        return ReasonCode.INVALID_ROOT
    issue_low = issue_confidence < threshold
    root_low = root_confidence < threshold
    if issue_low and root_low:
        return ReasonCode.BOTH_BELOW
    if issue_low:
        return ReasonCode.ISSUE_BELOW
    if root_low:
        return ReasonCode.ROOT_BELOW
    return ReasonCode.PASS


def qualify(record: Record, cutoff: datetime, threshold: float) -> Qualification:
    created = parse_created(record.created)
    in_window = is_valid_date(created) and created >= cutoff  # type: ignore[operator]
    issue_confidence = parse_confidence(record.issue_type_confidence)
    root_confidence = parse_confidence(record.root_cause_confidence)
    reason = reason_for(issue_confidence, root_confidence, threshold)
    return Qualification(
        included=in_window and reason.passed,
        window=WindowVerdict.RECENT if in_window else WindowVerdict.OLD,
        reason=reason,
        created=created,
        issue_confidence=issue_confidence,
        root_confidence=root_confidence,
    )


def qualify_records(
    records: Sequence[Record], cutoff: datetime, threshold: float
) -> Tuple[List[Record], List[DebugEntry]]:
    """Split records into the qualified subset and a debug entry per record."""
    qualified: List[Record] = []
    debug_entries: List[DebugEntry] = []
    for record in records:
        outcome = qualify(record, cutoff, threshold)
        debug_entries.append(
            DebugEntry(
                row_number=record.row_number,
                raw_created=record.created,
                parsed_created=outcome.created,
                summary=_label(record.summary),
                issue_type=_label(record.issue_type),
                issue_confidence=outcome.issue_confidence,
                root_cause=_label(record.root_cause),
                root_confidence=outcome.root_confidence,
                window=outcome.window,
                reason=outcome.reason,
            )
        )
        if outcome.included:
            qualified.append(record)
    return qualified, debug_entries


def _label(value: Any) -> str:
    if value is None or value == "":
        return ""
    return str(value)


__all__ = [
    "DebugEntry",
    "Qualification",
    "ReasonCode",
    "WindowVerdict",
    "compute_cutoff",
    "qualify",
    "qualify_records",
    "reason_for",
]

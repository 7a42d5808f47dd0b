from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from escalation_trends.report.parsing import INVALID_DATE
from escalation_trends.report.qualify import (
    ReasonCode,
    WindowVerdict,
    compute_cutoff,
    qualify,
    qualify_records,
    reason_for,
)
from escalation_trends.report.records import Record

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
CUTOFF = compute_cutoff(NOW, 30)


def _record(
    created: Any,
    issue_conf: Any = 90,
    root_conf: Any = 90,
    row_number: int = 2,
) -> Record:
    return Record(
        row_number=row_number,
        created=created,
        summary="Summary text",
        issue_type="Photo Update",
        issue_type_confidence=issue_conf,
        root_cause="Human Error",
        root_cause_confidence=root_conf,
    )


@pytest.mark.parametrize(
    "issue, root, expected",
    [
        (None, None, ReasonCode.MISSING_BOTH),
        (None, 90.0, ReasonCode.INVALID_ISSUE),
        (90.0, None, ReasonCode.INVALID_ROOT),
        (40.0, 55.0, ReasonCode.BOTH_BELOW),
        (59.9, 60.0, ReasonCode.ISSUE_BELOW),
        (60.0, 10.0, ReasonCode.ROOT_BELOW),
        (60.0, 60.0, ReasonCode.PASS),
        (None, 10.0, ReasonCode.INVALID_ISSUE),
    ],
)
def test_reason_precedence(
    issue: Optional[float], root: Optional[float], expected: ReasonCode
) -> None:
    assert reason_for(issue, root, 60) is expected


def test_reason_display_marks_failures() -> None:
    assert ReasonCode.PASS.display == "✅"
    assert ReasonCode.BOTH_BELOW.display == "❌ Both below threshold"
    assert ReasonCode.MISSING_BOTH.value == "Missing both confidences"
    assert len(ReasonCode) == 7


def test_compute_cutoff_subtracts_days() -> None:
    assert CUTOFF == datetime(2026, 9, 17, 12, 0, tzinfo=timezone.utc)


def test_window_verdicts() -> None:
    recent = qualify(_record((NOW - timedelta(days=5)).isoformat()), CUTOFF, 60)
    boundary = qualify(_record(CUTOFF), CUTOFF, 60)
    old = qualify(_record((NOW - timedelta(days=40)).isoformat()), CUTOFF, 60)
    invalid = qualify(_record("not a date"), CUTOFF, 60)

    assert recent.window is WindowVerdict.RECENT and recent.included
    assert boundary.window is WindowVerdict.RECENT
    assert old.window is WindowVerdict.OLD and not old.included
    assert old.reason is ReasonCode.PASS
    assert invalid.window is WindowVerdict.OLD
    assert invalid.created is INVALID_DATE
    assert not invalid.included


def test_included_requires_pass_and_recent() -> None:
    outcome = qualify(_record(NOW, issue_conf=40, root_conf=70), CUTOFF, 60)

    assert outcome.window is WindowVerdict.RECENT
    assert outcome.reason is ReasonCode.ISSUE_BELOW
    assert outcome.included is False


def test_fraction_confidences_are_scaled_before_threshold() -> None:
    outcome = qualify(_record(NOW, issue_conf=0.75, root_conf="0.61"), CUTOFF, 60)

    assert outcome.issue_confidence == 75
    assert outcome.root_confidence == 61
    assert outcome.included is True


def test_qualify_records_emits_debug_entry_per_record() -> None:
    records = [
        _record((NOW - timedelta(days=5)).isoformat(), 90, 70, row_number=2),
        _record((NOW - timedelta(days=40)).isoformat(), 90, 70, row_number=3),
        _record(NOW.isoformat(), 40, 55, row_number=4),
        _record(None, "", "abc", row_number=5),
    ]

    qualified, debug = qualify_records(records, CUTOFF, 60)

    assert qualified == [records[0]]
    assert [entry.row_number for entry in debug] == [2, 3, 4, 5]
    assert [entry.window for entry in debug] == [
        WindowVerdict.RECENT,
        WindowVerdict.OLD,
        WindowVerdict.RECENT,
        WindowVerdict.OLD,
    ]
    assert [entry.reason for entry in debug] == [
        ReasonCode.PASS,
        ReasonCode.PASS,
        ReasonCode.BOTH_BELOW,
        ReasonCode.MISSING_BOTH,
    ]
    last = debug[-1].as_row()
    assert last["Parsed ISO"] == "Invalid"
    assert last["Issue Conf"] is None
    assert last["Confidence Filter"] == "❌ Missing both confidences"
    assert debug[0].as_row()["Issue Type"] == "Photo Update"

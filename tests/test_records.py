from __future__ import annotations

from datetime import datetime
from pathlib import Path

import polars as pl
import pytest

from escalation_trends.config import ColumnsConfig
from escalation_trends.report.records import (
    RecordSourceError,
    RecordTable,
    load_records,
    records_to_frame,
    save_records,
)

CSV_TEXT = (
    "Created,Summary,Description,Issue Type (MNSD),AI Issue Type,AI Issue Type Confidence\n"
    "2024-03-01 10:00,Broken photo,Image does not load,Photo Update,,\n"
    "3/2/2024 9:30,Missing SKU,,Missing Records,Other,0.8\n"
)


def test_load_records_maps_known_and_passthrough_fields(tmp_path: Path) -> None:
    source = tmp_path / "raw.csv"
    source.write_text(CSV_TEXT, encoding="utf-8")

    table = load_records(source)

    assert len(table) == 2
    first, second = table.records
    assert first.row_number == 2 and second.row_number == 3
    assert first.created == "2024-03-01 10:00"
    assert first.summary == "Broken photo"
    assert first.issue_type is None
    assert first.root_cause is None
    assert first.extra == {"Issue Type (MNSD)": "Photo Update"}
    assert second.description is None
    assert second.issue_type == "Other"
    assert second.issue_type_confidence == 0.8
    assert table.value(first, "Issue Type (MNSD)") == "Photo Update"
    assert table.value(second, "AI Issue Type") == "Other"


def test_custom_column_names(tmp_path: Path) -> None:
    source = tmp_path / "raw.csv"
    source.write_text("Opened,Label\n2024-03-01,Other\n", encoding="utf-8")

    table = load_records(source, ColumnsConfig(created="Opened", issue_type="Label"))

    assert table.records[0].created == "2024-03-01"
    assert table.records[0].issue_type == "Other"
    assert table.records[0].extra == {}


def test_save_records_appends_declared_columns(tmp_path: Path) -> None:
    source = tmp_path / "raw.csv"
    source.write_text(CSV_TEXT, encoding="utf-8")
    table = load_records(source)
    table.ensure_columns(ColumnsConfig().classification_columns())
    first = table.records[0]
    first.issue_type = "Photo Update"
    first.issue_type_confidence = 90
    first.root_cause = "Human Error"
    first.root_cause_confidence = 65

    save_records(table, source)

    frame = pl.read_csv(source)
    assert frame.columns[-2:] == ["AI Root Cause", "AI Root Cause Confidence"]
    assert frame["AI Issue Type"].to_list() == ["Photo Update", "Other"]
    assert frame["AI Issue Type Confidence"].to_list() == [90.0, 0.8]
    assert frame["AI Root Cause"].to_list() == ["Human Error", None]
    assert frame["Issue Type (MNSD)"].to_list() == ["Photo Update", "Missing Records"]


def test_mixed_column_values_are_written_as_text() -> None:
    table = RecordTable.from_rows(
        ["Created", "AI Issue Type Confidence"],
        [
            {"Created": datetime(2024, 3, 1, 10), "AI Issue Type Confidence": "72%"},
            {"Created": "3/2/2024 9:30", "AI Issue Type Confidence": 80},
            {"Created": None, "AI Issue Type Confidence": None},
        ],
    )

    frame = records_to_frame(table)

    assert frame["Created"].to_list() == ["2024-03-01T10:00:00", "3/2/2024 9:30", None]
    assert frame["AI Issue Type Confidence"].to_list() == ["72%", "80", None]


def test_parquet_round_trip_keeps_native_dates(tmp_path: Path) -> None:
    target = tmp_path / "raw.parquet"
    pl.DataFrame(
        {"Created": [datetime(2024, 3, 1, 10)], "Summary": ["Broken photo"]}
    ).write_parquet(target)

    table = load_records(target)
    save_records(table, target)

    assert table.records[0].created == datetime(2024, 3, 1, 10)
    assert pl.read_parquet(target)["Created"].to_list() == [datetime(2024, 3, 1, 10)]


def test_missing_or_unsupported_source_raises(tmp_path: Path) -> None:
    with pytest.raises(RecordSourceError, match="not found"):
        load_records(tmp_path / "absent.csv")

    unsupported = tmp_path / "raw.txt"
    unsupported.write_text("Created\n", encoding="utf-8")
    with pytest.raises(RecordSourceError, match="Unsupported table format"):
        load_records(unsupported)


def test_header_only_table_has_no_records(tmp_path: Path) -> None:
    source = tmp_path / "raw.csv"
    source.write_text("Created,Summary\n", encoding="utf-8")

    table = load_records(source)

    assert len(table) == 0
    assert table.headers == ["Created", "Summary"]

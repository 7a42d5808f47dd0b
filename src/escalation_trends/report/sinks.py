from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import polars as pl

from escalation_trends.report.aggregate import GroupSummary
from escalation_trends.report.qualify import DebugEntry
from escalation_trends.utils.io import (
    write_csv_atomic,
    write_json_atomic,
    write_text_atomic,
)

SUMMARY_MD = "trend_summary.md"
SUMMARY_JSON = "trend_summary.json"
INSIGHTS_MD = "insights.md"
DEBUG_CSV = "debug.csv"

INSIGHTS_HEADER = "Root Cause Insights"
EMPTY_INSIGHT = "⚠️ Model returned no insight."
DEBUG_SCHEMA: Dict[str, Any] = {
    "Row #": pl.Int64,
    "Raw Created": pl.Utf8,
    "Parsed ISO": pl.Utf8,
    "Summary": pl.Utf8,
    "Issue Type": pl.Utf8,
    "Issue Conf": pl.Float64,
    "Root Cause": pl.Utf8,
    "Root Conf": pl.Float64,
    "Date Window": pl.Utf8,
    "Confidence Filter": pl.Utf8,
}


def summary_title(start: datetime, end: datetime) -> str:
    return f"Escalation Trends ({start:%a %b %d %Y} to {end:%a %b %d %Y})"


def no_qualifying_message(threshold: int) -> str:
    return f"⚠️ No qualifying tickets passed confidence threshold (≥{threshold}%)"


def write_summary(
    out_dir: Path,
    issue_groups: Sequence[GroupSummary],
    cause_groups: Sequence[GroupSummary],
    start: datetime,
    end: datetime,
    threshold: int,
    run_id: Optional[str] = None,
) -> Dict[str, Path]:
    out_dir = Path(out_dir)
    lines = [f"# {summary_title(start, end)}", ""]
    if not issue_groups and not cause_groups:
        lines.append(no_qualifying_message(threshold))
    else:
        lines.extend(_group_table("Issue Type", issue_groups))
        lines.append("")
        lines.extend(_group_table("Root Cause", cause_groups))
    md_path = out_dir / SUMMARY_MD
    write_text_atomic(md_path, "\n".join(lines) + "\n")

    payload = {
        "run_id": run_id,
        "window": {"start": start.isoformat(), "end": end.isoformat()},
        "confidence_threshold": threshold,
        "issue_types": [group.as_dict() for group in issue_groups],
        "root_causes": [group.as_dict() for group in cause_groups],
    }
    json_path = out_dir / SUMMARY_JSON
    write_json_atomic(json_path, payload)
    return {"markdown": md_path, "json": json_path}


def insight_lines(text: Any) -> List[str]:
    lines = [INSIGHTS_HEADER]
    if not text or not isinstance(text, str):
        lines.append(EMPTY_INSIGHT)
    else:
        lines.extend(line.strip() for line in text.split("\n"))
    return lines


def write_insights(out_dir: Path, text: Any) -> Path:
    lines = insight_lines(text)
    body = [f"# {lines[0]}", ""] + lines[1:]
    path = Path(out_dir) / INSIGHTS_MD
    write_text_atomic(path, "\n".join(body) + "\n")
    return path


def debug_frame(entries: Sequence[DebugEntry]) -> pl.DataFrame:
    rows = []
    for entry in entries:
        row = entry.as_row()
        raw = row["Raw Created"]
        row["Raw Created"] = _raw_text(raw)
        rows.append(row)
    columns = {name: [row[name] for row in rows] for name in DEBUG_SCHEMA}
    return pl.DataFrame(columns, schema=DEBUG_SCHEMA)


def write_debug(out_dir: Path, entries: Sequence[DebugEntry]) -> Path:
    path = Path(out_dir) / DEBUG_CSV
    write_csv_atomic(path, debug_frame(entries))
    return path


def _group_table(label: str, groups: Sequence[GroupSummary]) -> List[str]:
    lines = [f"| {label} | Count | Avg Confidence (%) |", "|---|---:|---:|"]
    for group in groups:
        lines.append(f"| {group.key} | {group.count} | {group.avg} |")
    return lines


def _raw_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "DEBUG_CSV",
    "DEBUG_SCHEMA",
    "INSIGHTS_MD",
    "SUMMARY_JSON",
    "SUMMARY_MD",
    "debug_frame",
    "insight_lines",
    "no_qualifying_message",
    "summary_title",
    "write_debug",
    "write_insights",
    "write_summary",
]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import polars as pl

from escalation_trends.config import ColumnsConfig
from escalation_trends.utils.io import read_table, write_table_atomic

RECORD_FIELDS = (
    "created",
    "summary",
    "description",
    "issue_type",
    "issue_type_confidence",
    "root_cause",
    "root_cause_confidence",
)
FIRST_DATA_ROW = 2  # header occupies row 1


class RecordSourceError(RuntimeError):
    """Raised when the record table cannot be read."""


@dataclass
class Record:
    """One escalation ticket.

    Columns outside the known fields are kept verbatim in ``extra`` under
    their header name so they survive a write-back and can serve as mirror
    sources.
    """

    row_number: int
    created: Any = None
    summary: Any = None
    description: Any = None
    issue_type: Any = None
    issue_type_confidence: Any = None
    root_cause: Any = None
    root_cause_confidence: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)


def is_blank(value: Any) -> bool:
    return value is None or value == ""


@dataclass
class RecordTable:
    headers: List[str]
    records: List[Record]
    columns: ColumnsConfig = field(default_factory=ColumnsConfig)

    def __post_init__(self) -> None:
        self._field_by_header = {
            getattr(self.columns, name): name for name in RECORD_FIELDS
        }

    def __len__(self) -> int:
        return len(self.records)

    def value(self, record: Record, header: str) -> Any:
        """Look up a cell by header name, whether or not it is a known field."""
        attr = self._field_by_header.get(header)
        if attr is not None and header in self.headers:
            return getattr(record, attr)
        return record.extra.get(header)

    def ensure_columns(self, names: Iterable[str]) -> List[str]:
        """Append any missing headers and return the ones that were added."""
        added: List[str] = []
        for name in names:
            if name not in self.headers:
                self.headers.append(name)
                added.append(name)
        return added

    def to_rows(self) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for record in self.records:
            row: Dict[str, Any] = {}
            for header in self.headers:
                row[header] = self.value(record, header)
            rows.append(row)
        return rows

    @classmethod
    def from_rows(
        cls,
        headers: Sequence[str],
        rows: Sequence[Mapping[str, Any]],
        columns: Optional[ColumnsConfig] = None,
    ) -> "RecordTable":
        columns = columns or ColumnsConfig()
        field_by_header = {getattr(columns, name): name for name in RECORD_FIELDS}
        records: List[Record] = []
        for index, row in enumerate(rows):
            record = Record(row_number=index + FIRST_DATA_ROW)
            for header in headers:
                cell = row.get(header)
                attr = field_by_header.get(header)
                if attr is None:
                    record.extra[header] = cell
                else:
                    setattr(record, attr, cell)
            records.append(record)
        return cls(headers=list(headers), records=records, columns=columns)


def load_records(path: Path, columns: Optional[ColumnsConfig] = None) -> RecordTable:
    source = Path(path)
    if not source.exists():
        raise RecordSourceError(f"Record table not found: {source}")
    try:
        frame = read_table(source)
    except ValueError as exc:
        raise RecordSourceError(str(exc)) from exc
    except (OSError, pl.exceptions.PolarsError) as exc:
        raise RecordSourceError(f"Unable to read record table {source}: {exc}") from exc
    if not frame.columns:
        raise RecordSourceError(f"Record table {source} has no header row")
    return RecordTable.from_rows(frame.columns, frame.to_dicts(), columns)


def save_records(table: RecordTable, path: Path) -> None:
    write_table_atomic(path, records_to_frame(table))


def records_to_frame(table: RecordTable) -> pl.DataFrame:
    rows = table.to_rows()
    series = [
        pl.Series(header, _coerce_column([row[header] for row in rows]))
        for header in table.headers
    ]
    return pl.DataFrame(series)


def _coerce_column(values: List[Any]) -> List[Any]:
    # a filled column can mix the reader's types with the engine's ints
    kinds = {_kind(value) for value in values if value is not None}
    if len(kinds) <= 1:
        return values
    if kinds == {"int", "float"}:
        return [float(value) if value is not None else None for value in values]
    return [_as_text(value) if value is not None else None for value in values]


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, str):
        return "str"
    return type(value).__name__


def _as_text(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


__all__ = [
    "FIRST_DATA_ROW",
    "Record",
    "RecordSourceError",
    "RecordTable",
    "is_blank",
    "load_records",
    "records_to_frame",
    "save_records",
]

"""Normalisation of the loosely typed ``Created`` and confidence cells.

Both parsers are total: every input maps either to a value on a single
scale or to a distinguishable "unparseable" result, and neither raises.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union

from escalation_trends.utils.rand import round_half_up

SERIAL_EPOCH_OFFSET_DAYS = 25569  # 1899-12-30 to 1970-01-01
MS_PER_DAY = 86400 * 1000
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATETIME = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{4})[ T](\d{1,2}):(\d{2})(?::(\d{2}))?"
)


class InvalidDate:
    """Sentinel for a creation value that could not be parsed."""

    _instance: Optional["InvalidDate"] = None

    def __new__(cls) -> "InvalidDate":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Invalid"

    __str__ = __repr__


INVALID_DATE = InvalidDate()
ParsedDate = Union[datetime, InvalidDate]


def parse_confidence(raw: object) -> Optional[float]:
    """Return a confidence on the 0-100 scale, or None when unparseable.

    Values up to and including 1 are read as fractions and scaled by 100;
    larger values are taken as percentages already. ``1`` therefore means
    100%, never 1%.
    """
    if raw is None:
        return None

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
        if math.isnan(value):
            return None
    else:
        if raw == "":
            return None
        cleaned = _NON_NUMERIC.sub("", str(raw).strip())
        match = _LEADING_NUMBER.match(cleaned)
        if match is None:
            return None
        value = float(match.group(0))

    if value <= 1:
        # drop binary noise such as 0.6 * 100 == 60.00000000000001
        return round(value * 100, 9)
    return value


def parse_created(raw: object) -> ParsedDate:
    """Return a timezone-aware creation timestamp or ``INVALID_DATE``.

    Accepted inputs, first match wins: native date/datetime values,
    spreadsheet serial day numbers (1899-12-30 epoch), ISO-8601 or RFC 2822
    strings, and ``M/D/YYYY H:MM[:SS]`` strings read as local time.
    """
    if isinstance(raw, datetime):
        return _localize(raw)
    if isinstance(raw, date):
        return _localize(datetime(raw.year, raw.month, raw.day))

    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return _from_serial(float(raw))

    if not isinstance(raw, str):
        return INVALID_DATE
    text = raw.strip()

    parsed = _from_iso_or_rfc(text)
    if parsed is not None:
        return parsed

    return _from_us_pattern(text)


def is_valid_date(value: ParsedDate) -> bool:
    return isinstance(value, datetime)


def format_parsed(value: ParsedDate) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(INVALID_DATE)


def _localize(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value
    try:
        return value.astimezone()
    except (OverflowError, OSError, ValueError):
        # local offset unknown at the edges of the calendar
        return value.replace(tzinfo=timezone.utc)


def _from_serial(serial: float) -> ParsedDate:
    try:
        millis = round_half_up((serial - SERIAL_EPOCH_OFFSET_DAYS) * MS_PER_DAY)
        return UNIX_EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, ValueError):
        return INVALID_DATE


def _from_iso_or_rfc(text: str) -> Optional[datetime]:
    if not text:
        return None
    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        parsed = None
    if parsed is not None:
        if _DATE_ONLY.match(text):
            return parsed.replace(tzinfo=timezone.utc)
        return _localize(parsed)

    try:
        rfc = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if rfc is None:
        return None
    return _localize(rfc)


def _from_us_pattern(text: str) -> ParsedDate:
    match = _US_DATETIME.match(text)
    if match is None:
        return INVALID_DATE
    month, day, year, hour, minute = (int(part) for part in match.groups()[:5])
    second = int(match.group(6) or 0)
    try:
        return _localize(datetime(year, month, day, hour, minute, second))
    except ValueError:
        return INVALID_DATE


__all__ = [
    "INVALID_DATE",
    "InvalidDate",
    "ParsedDate",
    "format_parsed",
    "is_valid_date",
    "parse_confidence",
    "parse_created",
]

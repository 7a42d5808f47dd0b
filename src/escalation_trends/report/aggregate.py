from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Sequence

from escalation_trends.report.parsing import parse_confidence
from escalation_trends.report.records import Record

UNKNOWN_LABEL = "Unknown"
TOP_GROUPS = 5


@dataclass(frozen=True)
class GroupSummary:
    key: str
    count: int
    avg: float

    def as_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "count": self.count, "avg": self.avg}


def summarize_by_key(
    records: Sequence[Record],
    label_field: str,
    confidence_field: str,
    limit: int = TOP_GROUPS,
) -> List[GroupSummary]:
    """Group records by a label attribute and keep the largest groups.

    Groups are ranked by count; ties keep the order in which the label first
    appeared. A confidence that cannot be parsed adds 0 to the group total
    but still counts the record.
    """
    totals: Dict[str, List[float]] = {}
    for record in records:
        key = getattr(record, label_field) or UNKNOWN_LABEL
        key = str(key)
        confidence = parse_confidence(getattr(record, confidence_field))
        stats = totals.setdefault(key, [0, 0.0])
        stats[0] += 1
        stats[1] += confidence if confidence is not None else 0.0

    groups = [
        GroupSummary(key=key, count=int(count), avg=_average(total, count))
        for key, (count, total) in totals.items()
    ]
    groups.sort(key=lambda group: -group.count)
    return groups[:limit]


def _average(total: float, count: int) -> float:
    # ties on the binary value round up, 70.25 -> 70.3
    exact = Decimal(total / count)
    return float(exact.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


__all__ = ["GroupSummary", "TOP_GROUPS", "UNKNOWN_LABEL", "summarize_by_key"]

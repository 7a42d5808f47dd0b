from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from escalation_trends.config import AppConfig
from escalation_trends.report.aggregate import GroupSummary, summarize_by_key
from escalation_trends.report.fill import FillStats, fill_records
from escalation_trends.report.insights import compose_insights
from escalation_trends.report.llm import LLMClient
from escalation_trends.report.qualify import DebugEntry, compute_cutoff, qualify_records
from escalation_trends.report.records import RecordTable
from escalation_trends.report.sinks import write_debug, write_insights, write_summary
from escalation_trends.utils.logging import current_run_id
from escalation_trends.utils.rand import make_rng


@dataclass
class PipelineResult:
    fill: FillStats
    cutoff: datetime
    end: datetime
    threshold: int
    debug_entries: List[DebugEntry]
    qualified_count: int
    issue_groups: List[GroupSummary]
    cause_groups: List[GroupSummary]
    insights: str
    outputs: Dict[str, Path] = field(default_factory=dict)
    run_id: Optional[str] = None

    @property
    def total_count(self) -> int:
        return len(self.debug_entries)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "fill": self.fill.as_dict(),
            "window": {"start": self.cutoff.isoformat(), "end": self.end.isoformat()},
            "confidence_threshold": self.threshold,
            "total": self.total_count,
            "qualified": self.qualified_count,
            "issue_types": [group.as_dict() for group in self.issue_groups],
            "root_causes": [group.as_dict() for group in self.cause_groups],
            "outputs": {name: str(path) for name, path in self.outputs.items()},
        }


def run_pipeline(
    config: AppConfig,
    table: RecordTable,
    *,
    client: Optional[LLMClient] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    out_dir: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> PipelineResult:
    """Fill, qualify, aggregate and narrate one batch of records.

    ``table`` is mutated by the fill pass; persisting it is left to the
    caller. Report files are written only when ``out_dir`` is given.
    """
    now = now or datetime.now()
    if now.tzinfo is None:
        # parsed creation dates are always aware
        now = now.astimezone()
    rng = rng or make_rng(None)
    threshold = config.filter.confidence_threshold

    fill_stats = fill_records(
        table,
        config.fill,
        rng=rng,
        client=client,
        temperature=config.llm.classify_temperature,
        logger=logger,
    )

    cutoff = compute_cutoff(now, config.filter.days_back)
    qualified, debug_entries = qualify_records(table.records, cutoff, threshold)
    if logger:
        logger.info(
            "Qualified %d of %d records (cutoff %s, threshold %d)",
            len(qualified),
            len(debug_entries),
            cutoff.isoformat(),
            threshold,
        )

    issue_groups = summarize_by_key(qualified, "issue_type", "issue_type_confidence")
    cause_groups = summarize_by_key(qualified, "root_cause", "root_cause_confidence")

    insights = compose_insights(
        cause_groups,
        client,
        mock_if_no_credential=config.insights.mock_if_no_credential,
        days_back=config.filter.days_back,
        temperature=config.llm.insight_temperature,
        env_var=config.llm.env_key_var,
        logger=logger,
    )

    result = PipelineResult(
        fill=fill_stats,
        cutoff=cutoff,
        end=now,
        threshold=threshold,
        debug_entries=debug_entries,
        qualified_count=len(qualified),
        issue_groups=issue_groups,
        cause_groups=cause_groups,
        insights=insights,
        run_id=current_run_id(),
    )

    if out_dir is not None:
        result.outputs = write_reports(result, Path(out_dir))
        if logger:
            for name, path in result.outputs.items():
                logger.info("Wrote %s to %s", name, path)
    return result


def write_reports(result: PipelineResult, out_dir: Path) -> Dict[str, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    summary_paths = write_summary(
        out_dir,
        result.issue_groups,
        result.cause_groups,
        result.cutoff,
        result.end,
        result.threshold,
        run_id=result.run_id,
    )
    return {
        "summary": summary_paths["markdown"],
        "summary_json": summary_paths["json"],
        "insights": write_insights(out_dir, result.insights),
        "debug": write_debug(out_dir, result.debug_entries),
    }


__all__ = ["PipelineResult", "run_pipeline", "write_reports"]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from schemas.bucket_ir import BucketKey, BucketStats
from schemas.session_ir import SessionRecord
from skills.aggregator import (
    UnsetPolicy,
    by_issue_type,
    by_tech_tag,
    by_template,
    compute_buckets,
)

REPORT_TECH_TAGS = ("react", "typescript")
LOW_SATISFACTION = 3.0
LOW_SATISFACTION_WARN_PCT = 30.0
INCOMPLETE_WARN_PCT = 25.0


@dataclass
class PatternReport:
    total_sessions: int
    by_issue_type: Dict[BucketKey, BucketStats]
    by_template: Dict[BucketKey, BucketStats]
    by_tech: Dict[BucketKey, BucketStats]
    low_satisfaction_sessions: int = 0
    incomplete_sessions: int = 0
    rated_sessions: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def low_satisfaction_pct(self) -> float:
        if self.rated_sessions == 0:
            return 0.0
        return self.low_satisfaction_sessions * 100.0 / self.rated_sessions

    @property
    def incomplete_pct(self) -> float:
        if self.total_sessions == 0:
            return 0.0
        return self.incomplete_sessions * 100.0 / self.total_sessions

    @property
    def completed_sessions(self) -> int:
        return self.total_sessions - self.incomplete_sessions


def _sorted(buckets: Dict[BucketKey, BucketStats]) -> Dict[BucketKey, BucketStats]:
    return {key: buckets[key] for key in sorted(buckets, key=str)}


def build_pattern_report(
    records: Sequence[SessionRecord],
    unset_policy: UnsetPolicy = "zero",
) -> PatternReport:
    """Bucket tables plus improvement opportunities.

    Sessions without a satisfaction rating count as low satisfaction under
    the ``zero`` policy and are skipped under ``exclude``. A session whose
    completion was never recorded counts as incomplete.
    """
    by_tech: Dict[BucketKey, BucketStats] = {}
    for tag in REPORT_TECH_TAGS:
        stats = compute_buckets(records, by_tech_tag(tag), unset_policy).get(True)
        if stats is not None:
            by_tech[tag] = stats.model_copy(update={"key": tag})

    low = 0
    rated = 0
    incomplete = 0
    for record in records:
        satisfaction = record.response_quality.user_satisfaction
        if satisfaction is None and unset_policy == "zero":
            satisfaction = 0.0
        if satisfaction is not None:
            rated += 1
            if satisfaction < LOW_SATISFACTION:
                low += 1
        if record.outcome.task_completed is not True:
            incomplete += 1

    report = PatternReport(
        total_sessions=len(records),
        by_issue_type=_sorted(compute_buckets(records, by_issue_type, unset_policy)),
        by_template=_sorted(compute_buckets(records, by_template, unset_policy)),
        by_tech=by_tech,
        low_satisfaction_sessions=low,
        incomplete_sessions=incomplete,
        rated_sessions=rated,
    )
    if report.low_satisfaction_pct > LOW_SATISFACTION_WARN_PCT:
        report.warnings.append(
            "High dissatisfaction detected - consider prompt template improvements"
        )
    if report.incomplete_pct > INCOMPLETE_WARN_PCT:
        report.warnings.append("Low completion rate - consider breaking down complex tasks")
    return report


def _markdown_table(buckets: Dict[BucketKey, BucketStats]) -> str:
    if not buckets:
        return "No data."
    lines = [
        "| key | sessions | successful | success % | avg satisfaction |",
        "| --- | --- | --- | --- | --- |",
    ]
    for key, stats in buckets.items():
        lines.append(
            f"| {key} | {stats.total_sessions} | {stats.successful_sessions} | "
            f"{stats.success_pct:.1f} | {stats.avg_satisfaction:.1f} |"
        )
    return "\n".join(lines)


def render_insights(report: PatternReport, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    parts = [
        "# Pattern Analysis Insights",
        f"## Generated: {now.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        "",
        f"Total sessions: {report.total_sessions}",
        "",
        "### Issue Types",
        _markdown_table(report.by_issue_type),
        "",
        "### Templates",
        _markdown_table(report.by_template),
        "",
        "### Technology Stack",
        _markdown_table(report.by_tech),
        "",
        "### Improvement Opportunities",
        f"- Low satisfaction rate: {report.low_satisfaction_pct:.1f}% "
        f"({report.low_satisfaction_sessions}/{report.rated_sessions} sessions)",
        f"- Task completion rate: {100.0 - report.incomplete_pct:.1f}% "
        f"({report.completed_sessions}/{report.total_sessions} completed)",
    ]
    parts.extend(f"- {warning}" for warning in report.warnings)
    return "\n".join(parts) + "\n"


def export_insights(report: PatternReport, path: Path, now: Optional[datetime] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_insights(report, now), encoding="utf-8")
    return path

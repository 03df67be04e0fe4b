from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from schemas.session_ir import SessionRecord
from schemas.template_ir import TemplateLibrary, TemplateStats
from skills.aggregator import by_template, compute_buckets

DEFAULT_TEMPLATE = "linear_task_v1"


@dataclass
class SelectionThresholds:
    default_template: str = DEFAULT_TEMPLATE
    tech_min_success: float = 0.7
    tech_min_usage: int = 3
    mapped_min_success: float = 0.6
    mapped_min_usage: int = 2
    tech_priority: List[Tuple[str, str]] = field(
        default_factory=lambda: [("react", "react_specific"), ("typescript", "typescript_specific")]
    )


def _qualifies(stats: Optional[TemplateStats], min_success: float, min_usage: int) -> bool:
    if stats is None:
        return False
    return stats.success_rate > min_success and stats.usage_count >= min_usage


def select_template(
    issue_type: str,
    tech_stack: Iterable[str],
    library: Optional[TemplateLibrary],
    thresholds: Optional[SelectionThresholds] = None,
) -> str:
    """Pick a template name from a statistics snapshot; performs no I/O."""
    thresholds = thresholds or SelectionThresholds()
    if library is None:
        return thresholds.default_template
    tags = {str(tag).strip().lower() for tag in tech_stack}
    for tag, template_name in thresholds.tech_priority:
        if tag not in tags:
            continue
        if _qualifies(
            library.stats_for(template_name),
            thresholds.tech_min_success,
            thresholds.tech_min_usage,
        ):
            return template_name
    mapped = library.adaptation_rules.issue_type_mapping.get(issue_type)
    if mapped and _qualifies(
        library.stats_for(mapped),
        thresholds.mapped_min_success,
        thresholds.mapped_min_usage,
    ):
        return mapped
    return thresholds.default_template


def load_library(path: Path) -> Optional[TemplateLibrary]:
    if not path.exists():
        return None
    try:
        return TemplateLibrary.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError):
        return None


def save_library(library: TemplateLibrary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = library.model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def refresh_library_stats(
    library: TemplateLibrary,
    records: Sequence[SessionRecord],
) -> TemplateLibrary:
    """Recompute usage_count and success_rate (successful / total) of known templates."""
    buckets = compute_buckets(records, by_template)
    for name, stats in library.templates.items():
        bucket = buckets.get(name)
        if bucket is None:
            stats.usage_count = 0
            stats.success_rate = 0.0
            continue
        stats.usage_count = bucket.total_sessions
        stats.success_rate = bucket.successful_sessions / bucket.total_sessions
    return library

from __future__ import annotations

from schemas.strict_base import StrictBaseModel


class CommitMetrics(StrictBaseModel):
    total_commits: int = 0
    ai_commits: int = 0
    dev_commits: int = 0
    other_commits: int = 0
    ai_percentage: int = 0
    dev_percentage: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    files_changed: int = 0
    branch_age: str = "unknown"

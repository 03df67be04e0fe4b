from __future__ import annotations

from typing import Union

from schemas.strict_base import StrictBaseModel

# Issue type / template name, or tag presence for tech-stack partitions.
BucketKey = Union[bool, str]


class VariantMetrics(StrictBaseModel):
    total_sessions: int = 0
    successful_sessions: int = 0
    avg_satisfaction: float = 0.0
    avg_success_rate: float = 0.0


class BucketStats(VariantMetrics):
    key: BucketKey

    @property
    def success_pct(self) -> float:
        if not self.total_sessions:
            return 0.0
        return self.successful_sessions * 100.0 / self.total_sessions

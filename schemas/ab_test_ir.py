from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from schemas.bucket_ir import VariantMetrics
from schemas.strict_base import StrictBaseModel, VariantLabel


class Variant(StrictBaseModel):
    name: str
    template: str
    metrics: VariantMetrics = Field(default_factory=VariantMetrics)


class ABTestVariants(StrictBaseModel):
    A: Variant
    B: Variant


class ABTestConfig(StrictBaseModel):
    target_issue_types: List[str] = Field(default_factory=list)
    min_sample_size: int = Field(default=10, ge=1)
    # Recorded for reference; assignment is always a 50/50 hash parity split.
    traffic_split: int = Field(default=50, ge=0, le=100)
    success_threshold: float = 0.7
    satisfaction_threshold: float = 3.5

    @field_validator("target_issue_types")
    @classmethod
    def _normalize_types(cls, value: List[str]) -> List[str]:
        seen: List[str] = []
        for item in value:
            tag = str(item).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class ABTestResults(StrictBaseModel):
    # Heuristic flag: a dominance winner exists and both arms reached
    # min_sample_size. No hypothesis test is run.
    statistical_significance: bool = False
    winning_variant: Optional[VariantLabel] = None
    confidence_level: Optional[float] = None


class ABTest(StrictBaseModel):
    test_name: str
    description: str = ""
    created: str = ""
    stopped: Optional[str] = None
    status: Literal["active", "stopped"] = "active"
    variants: ABTestVariants
    config: ABTestConfig = Field(default_factory=ABTestConfig)
    results: ABTestResults = Field(default_factory=ABTestResults)

    def variant(self, label: VariantLabel) -> Variant:
        return self.variants.A if label == "A" else self.variants.B

    def targets(self, issue_type: str) -> bool:
        return issue_type in self.config.target_issue_types


class VariantAssignment(StrictBaseModel):
    test_name: str
    variant: VariantLabel
    template: str

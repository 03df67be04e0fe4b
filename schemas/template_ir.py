from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TemplateStats(BaseModel):
    model_config = ConfigDict(extra="allow")

    template: str = ""
    description: str = ""
    success_rate: float = 0.0
    usage_count: int = 0


class AdaptationRules(BaseModel):
    model_config = ConfigDict(extra="allow")

    issue_type_mapping: Dict[str, str] = Field(default_factory=dict)


class TemplateLibrary(BaseModel):
    """Snapshot of templates/adaptive_prompts.json (hand-edited, so extra keys are allowed)."""

    model_config = ConfigDict(extra="allow")

    templates: Dict[str, TemplateStats] = Field(default_factory=dict)
    adaptation_rules: AdaptationRules = Field(default_factory=AdaptationRules)

    def stats_for(self, name: str) -> Optional[TemplateStats]:
        return self.templates.get(name)

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator

from schemas.strict_base import SessionStatus, StrictBaseModel, VariantLabel


class ProjectContext(StrictBaseModel):
    branch: str = "unknown"
    # Set semantics; persisted sorted so files diff cleanly.
    tech_stack: List[str] = Field(default_factory=list)
    files_changed: List[str] = Field(default_factory=list)
    timestamp: str = ""

    @field_validator("tech_stack")
    @classmethod
    def _normalize_tech_stack(cls, value: List[str]) -> List[str]:
        return sorted({str(tag).strip().lower() for tag in value if str(tag).strip()})


class PromptInfo(StrictBaseModel):
    original: str
    modifications: Optional[str] = None
    template_used: str


class ResponseQuality(StrictBaseModel):
    success_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    user_satisfaction: Optional[float] = Field(default=None, ge=1.0, le=5.0)


class SessionOutcome(StrictBaseModel):
    task_completed: Optional[bool] = None
    files_modified: Optional[int] = Field(default=None, ge=0)


class ABTestRef(StrictBaseModel):
    test_name: str
    variant: VariantLabel


class SessionRecord(StrictBaseModel):
    session_id: str
    issue_id: str
    issue_type: str
    project_context: ProjectContext = Field(default_factory=ProjectContext)
    prompt: PromptInfo
    response_quality: ResponseQuality = Field(default_factory=ResponseQuality)
    outcome: SessionOutcome = Field(default_factory=SessionOutcome)
    status: SessionStatus = "initiated"
    ab_test: Optional[ABTestRef] = None

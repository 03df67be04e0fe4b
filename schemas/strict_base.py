from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

SessionStatus = Literal["initiated", "completed"]
VariantLabel = Literal["A", "B"]


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

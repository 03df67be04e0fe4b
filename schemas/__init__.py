"""Pydantic schemas for the task workflow and its prompt-session store."""

from schemas.strict_base import SessionStatus, StrictBaseModel, VariantLabel

__all__ = ["SessionStatus", "StrictBaseModel", "VariantLabel"]

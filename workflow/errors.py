from __future__ import annotations

from typing import List, Optional


class ConfigurationError(RuntimeError):
    """Raised when a required credential, setting or tool is missing."""

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.hint = hint


class ExternalCallError(RuntimeError):
    """Raised when an external service returns an unusable or error response."""

    def __init__(self, service: str, message: str, raw: Optional[str] = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.raw = raw


class AmbiguousExperimentError(RuntimeError):
    """Raised when several active A/B tests target the same issue type."""

    def __init__(self, issue_type: str, test_names: List[str]) -> None:
        super().__init__(
            f"Ambiguous active A/B tests for issue type '{issue_type}': {', '.join(test_names)}"
        )
        self.issue_type = issue_type
        self.test_names = test_names


class ExperimentExistsError(RuntimeError):
    pass


class ExperimentNotFoundError(LookupError):
    pass

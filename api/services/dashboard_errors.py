"""Exceptions raised while producing a daily dashboard."""

from __future__ import annotations


class DashboardGenerationError(RuntimeError):
    """Base class for dashboard generation failures."""


class SanitizationFailure(DashboardGenerationError):
    """Raised when no JSON object boundary can be found in the raw output."""


class ValidationFailure(DashboardGenerationError):
    def __init__(self, field_path: str, reason: str) -> None:
        super().__init__(f"{field_path}: {reason}")
        self.field_path = field_path
        self.reason = reason


class BackendError(DashboardGenerationError):
    """Raised when the text-generation backend call itself fails."""


class GenerationTimeoutError(BackendError):
    """Raised when the backend does not answer within the configured timeout."""


class FallbackExhausted(DashboardGenerationError):
    """The deterministic fallback produced a payload the validator rejected."""

    def __init__(self, field_path: str, reason: str) -> None:
        super().__init__(f"deterministic fallback rejected at {field_path}: {reason}")
        self.field_path = field_path
        self.reason = reason

"""Exceptions raised by taskparse."""

from __future__ import annotations


class TaskParseError(Exception):
    """Base exception for all taskparse errors."""


class InvalidInputError(TaskParseError, ValueError):
    """Raised when a caller supplies unusable input (e.g. empty task text)."""


class ExtractionSchemaError(TaskParseError):
    """Raised when the model's function-call arguments are missing or malformed."""


class RateLimitExceededError(TaskParseError):
    """Raised when a caller has used up its request budget for the current window."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(TaskParseError):
    """Raised for language-model provider failures."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class UpstreamRateLimitError(UpstreamError):
    """Raised when the provider rejects a request for exceeding its rate limit."""


class UpstreamAuthError(UpstreamError):
    """Raised when provider credentials are missing or rejected."""

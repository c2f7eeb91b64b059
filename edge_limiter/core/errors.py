"""Application-level exception types.

This module defines domain errors raised by the rate limiting core and the
HTTP boundary, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional so each error only carries what is relevant.
    """

    hint: str
    backend: str
    key_type: str
    limit: int
    retry_after: float
    timeout_s: float
    error_type: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RateLimitExceededError(AppError):
    """Raised at the HTTP boundary when a request is denied by the limiter.

    ``details["retry_after"]`` carries the wait time in seconds.
    """

    @property
    def retry_after(self) -> float:
        return float((self.details or {}).get("retry_after", 0.0))


class BackendUnavailableError(AppError):
    """Raised when the rate limit store cannot produce a decision.

    Covers unreachable stores, timeouts and protocol faults. The decision is
    indeterminate: callers must never read it as an allow or a deny.
    """

"""Library-level exception types.

This module defines the errors raised by limiters and their configuration,
enabling consistent error handling and logging for callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from callguard.adapters.rate_limit.base import RateLimitResult


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and callers.

    Fields are optional so each error only carries what applies to it.
    """

    code: str
    message: str
    hint: str
    operation: str
    limit: int
    remaining: int
    retry_after: float
    value: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for limiter failures.

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


class ConfigurationError(AppError):
    """Raised when limiter construction arguments are malformed."""


class UnregisteredOperationError(AppError):
    """Raised when admission is requested for a key that was never wrapped."""


class RateLimitExceeded(AppError):
    """Raised when an operation's quota for the current window is exhausted.

    The limiter never retries; callers decide whether to retry, queue or give
    up. ``result`` carries the window metadata of the rejected call.
    """

    def __init__(self, operation: str, result: RateLimitResult) -> None:
        super().__init__(
            code="rate_limit_exceeded",
            message=f"Rate limit exceeded for operation '{operation}'",
            details={
                "operation": operation,
                "limit": result.limit,
                "remaining": result.remaining,
                "retry_after": float(result.retry_after_seconds or 0),
            },
        )
        self.operation = operation
        self.result = result

"""Rate limiter interfaces.

The facade depends on this abstraction (not the concrete implementation) so
the storage backend can be replaced with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WindowState:
    """Immutable snapshot of one key's fixed window.

    Attributes:
        window_start: Clock reading at which the current window began.
        remaining: Calls still permitted in the window; transiently negative
            once rejected calls have been counted.
    """

    window_start: float
    remaining: int


@dataclass(frozen=True)
class RateLimitResult:
    """Result of an admission check or status lookup.

    Attributes:
        allowed: Whether the call is allowed to proceed.
        limit: Max calls per window.
        remaining: Remaining calls in the current window (0 when blocked).
        reset_at: Clock reading at which the current window expires.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-key fixed-window rate limiters."""

    @abstractmethod
    def register(self, key: str) -> bool:
        """Create the window state for ``key`` unless it already exists.

        Returns:
            True if a new state was created.
        """
        raise NotImplementedError

    @abstractmethod
    def consume(self, key: str, *, create_missing: bool = False) -> RateLimitResult:
        """Atomically admit one call for ``key``.

        Args:
            key: Operation key registered via ``register``.
            create_missing: Recreate a fresh window when the key is unknown
                instead of failing.

        Returns:
            RateLimitResult describing whether the call was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str) -> RateLimitResult:
        """Describe the key's window without consuming from it."""
        raise NotImplementedError

    @abstractmethod
    def evict_idle(self, idle_windows: int) -> list[str]:
        """Drop keys whose window started more than ``idle_windows`` windows ago.

        Returns:
            The evicted keys.
        """
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        """Return the currently registered keys."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | float]:
        """Return aggregate admission counters."""
        raise NotImplementedError

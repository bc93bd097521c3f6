"""Rate-limiting guard for arbitrary callables.

A ``RateLimiter`` holds one quota policy ("``limit`` calls per ``window``")
and applies it independently to every operation registered with it. Wrapping
an operation returns a callable with the same signature that performs an
admission check before each call and raises ``RateLimitExceeded`` instead of
calling through once the operation's quota for the current window is spent.

Usage:
    limiter = RateLimiter(100, "10Min")
    fetch = limiter.wrap("fetch", fetch)

    @limiter.limited("lookup")
    def lookup(name): ...
"""

from __future__ import annotations

import functools
import time
from typing import Callable, ParamSpec, Protocol, TypeVar

from pydantic import ValidationError

from callguard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from callguard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from callguard.core.config import LimiterSettings, get_settings
from callguard.core.errors import ConfigurationError, RateLimitExceeded
from callguard.core.logging import reset_operation, set_operation
from callguard.core.window import parse_window

P = ParamSpec("P")
R = TypeVar("R")


class OperationDecorator(Protocol):
    """Decorator returned by ``RateLimiter.limited``; keeps the signature."""

    def __call__(self, operation: Callable[P, R], /) -> Callable[P, R]: ...


class RateLimiter:
    """Fixed-window rate limiter applied per named operation.

    Attributes:
        limit: Maximum number of admitted calls per window and operation.
        window: Window specification the limiter was built with (e.g. "1Min").
        window_seconds: Resolved window length in seconds.
    """

    def __init__(
        self,
        limit: int,
        window: str,
        *,
        clock: Callable[[], float] = time.monotonic,
        evict_idle_windows: int = 2,
    ) -> None:
        """Create a limiter with an immutable quota policy.

        Args:
            limit: Maximum number of admitted calls per window.
            window: Window as ``<integer><unit>`` with unit Sec, Min or Hrs.
            clock: Monotonic time source in seconds.
            evict_idle_windows: Default idleness horizon for ``evict_idle``.

        Raises:
            ConfigurationError: If the window string, limit or eviction
                horizon is invalid.
        """
        if (
            isinstance(evict_idle_windows, bool)
            or not isinstance(evict_idle_windows, int)
            or evict_idle_windows < 1
        ):
            raise ConfigurationError(
                code="configuration_error",
                message="evict_idle_windows must be a positive integer",
                details={"value": repr(evict_idle_windows)},
            )
        self._window_seconds = parse_window(window)
        self._backend: AbstractRateLimiter = InMemoryFixedWindowRateLimiter(
            limit=limit,
            window_seconds=self._window_seconds,
            clock=clock,
        )
        self._limit = limit
        self._window = window
        self._evict_idle_windows = evict_idle_windows

    @classmethod
    def from_settings(
        cls,
        limiter_settings: LimiterSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> "RateLimiter":
        """Build a limiter from environment-driven settings.

        Args:
            limiter_settings: Optional settings; defaults to ``get_settings()``.
            clock: Monotonic time source in seconds.

        Raises:
            ConfigurationError: If the environment holds invalid settings.
        """
        cfg = limiter_settings
        if cfg is None:
            try:
                cfg = get_settings().limiter
            except ValidationError as exc:
                raise ConfigurationError(
                    code="configuration_error",
                    message="Invalid limiter settings in environment",
                    details={"context": {"errors": exc.errors(include_url=False)}},
                ) from exc
        return cls(
            cfg.limit,
            cfg.window,
            clock=clock,
            evict_idle_windows=cfg.evict_idle_windows,
        )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"RateLimiter(limit={self._limit}, window={self._window!r}, "
            f"operations={len(self._backend.keys())})"
        )

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window(self) -> str:
        return self._window

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def wrap(self, key: str, operation: Callable[P, R]) -> Callable[P, R]:
        """Return ``operation`` guarded by this limiter under ``key``.

        The key's window starts now unless the key is already registered, in
        which case the new wrapper shares the existing quota.

        Args:
            key: Caller-chosen operation name; one quota per key.
            operation: Any callable.

        Returns:
            Callable with the same signature that admits before calling
            ``operation`` and returns its result unchanged.

        Raises:
            TypeError: If operation is not callable.
            ValueError: If key is not a non-empty string.
        """
        if not callable(operation):
            raise TypeError("operation must be callable")

        self._backend.register(key)

        @functools.wraps(operation)
        def guarded(*args: P.args, **kwargs: P.kwargs) -> R:
            self._admit(key, create_missing=True)
            token = set_operation(key)
            try:
                return operation(*args, **kwargs)
            finally:
                reset_operation(token)

        guarded.rate_limit_key = key  # type: ignore[attr-defined]
        return guarded

    def limited(self, key: str) -> OperationDecorator:
        """Decorator form of ``wrap``."""

        def decorator(operation: Callable[P, R]) -> Callable[P, R]:
            return self.wrap(key, operation)

        return decorator

    def admit(self, key: str) -> RateLimitResult:
        """Run one admission check for a registered key.

        Raises:
            RateLimitExceeded: If the key's quota for the window is spent.
            UnregisteredOperationError: If ``key`` was never wrapped.
        """
        return self._admit(key, create_missing=False)

    def _admit(self, key: str, *, create_missing: bool) -> RateLimitResult:
        result = self._backend.consume(key, create_missing=create_missing)
        if not result.allowed:
            raise RateLimitExceeded(key, result)
        return result

    def status(self, key: str) -> RateLimitResult:
        """Describe the key's window without consuming a permit."""
        return self._backend.peek(key)

    def keys(self) -> list[str]:
        return self._backend.keys()

    def stats(self) -> dict[str, int | float]:
        return self._backend.stats()

    def evict_idle(self, idle_windows: int | None = None) -> list[str]:
        """Forget operations whose window has been idle for a while.

        Wrappers of evicted operations keep working: their next call starts
        a fresh window, exactly as an expired window would have.

        Args:
            idle_windows: Idleness horizon in windows; defaults to the
                limiter's ``evict_idle_windows``.

        Returns:
            The evicted operation keys.
        """
        if idle_windows is None:
            idle_windows = self._evict_idle_windows
        return self._backend.evict_idle(idle_windows)

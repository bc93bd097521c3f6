"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: separate processes each enforce their own quota.
- Thread-safe: every key owns a lock guarding its read/reset/decrement
  sequence, so unrelated keys never contend. The registry lock is only taken
  to insert or evict keys.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable

from callguard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitResult,
    WindowState,
)
from callguard.core.errors import ConfigurationError, UnregisteredOperationError

logger = logging.getLogger(__name__)


@dataclass
class _KeyEntry:
    state: WindowState
    lock: threading.Lock = field(default_factory=threading.Lock)
    evicted: bool = False
    admitted: int = 0
    rejected: int = 0
    resets: int = 0


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Each key starts with ``limit`` permits when registered. Every admission
    decrements the key's counter; once more than ``window_seconds`` have
    elapsed since the window began, the next admission starts a new window
    with the full quota. Exactly ``limit`` calls are admitted per window.

    Important:
        Rejected calls are still counted, so ``WindowState.remaining`` may
        drop below zero until the window resets.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of admitted calls per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source returning seconds; must not go backwards.

        Raises:
            ConfigurationError: If limit or window_seconds are invalid.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError(
                code="configuration_error",
                message="limit must be a positive integer",
                details={"value": repr(limit)},
            )
        if window_seconds <= 0:
            raise ConfigurationError(
                code="configuration_error",
                message="window_seconds must be > 0",
                details={"value": repr(window_seconds)},
            )

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._entries: dict[str, _KeyEntry] = {}
        self._evicted_totals = {"admitted": 0, "rejected": 0, "resets": 0, "evictions": 0}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def register(self, key: str) -> bool:
        """Create a fresh window for ``key`` if it is not registered yet.

        Args:
            key: Operation key.

        Returns:
            True if the key was newly registered, False if it already existed.

        Raises:
            ValueError: If key is not a non-empty string.
        """
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")

        if key in self._entries:
            return False

        with self._registry_lock:
            if key in self._entries:
                return False
            self._entries[key] = _KeyEntry(
                state=WindowState(window_start=self._clock(), remaining=self._limit)
            )

        logger.info(
            "rate_limit.registered",
            extra={
                "operation": key,
                "limit": self._limit,
                "window_s": self._window_seconds,
            },
        )
        return True

    def _lookup(self, key: str, create_missing: bool) -> tuple[_KeyEntry, bool]:
        recreated = False
        entry = self._entries.get(key)
        while entry is None:
            if not create_missing:
                raise UnregisteredOperationError(
                    code="unregistered_operation",
                    message=f"Operation '{key}' was never registered with this limiter",
                    details={"operation": key},
                )
            recreated = self.register(key) or recreated
            entry = self._entries.get(key)
        return entry, recreated

    def _result(self, *, state: WindowState, now: float) -> RateLimitResult:
        reset_at = state.window_start + self._window_seconds
        if state.remaining >= 0:
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=state.remaining,
                reset_at=reset_at,
                retry_after_seconds=None,
            )
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(0, int(math.ceil(reset_at - now))),
        )

    def consume(self, key: str, *, create_missing: bool = False) -> RateLimitResult:
        """Admit one call for ``key``.

        The reset decision, the decrement and the store of the new snapshot
        happen under the key's lock, so concurrent callers can never both
        spend the same permit.

        Args:
            key: Operation key.
            create_missing: Re-register the key if it is unknown (used by
                wrappers whose key was evicted while idle).

        Returns:
            RateLimitResult with the admission decision and window metadata.

        Raises:
            UnregisteredOperationError: If the key is unknown and
                ``create_missing`` is False.
        """
        while True:
            entry, recreated = self._lookup(key, create_missing)
            with entry.lock:
                if entry.evicted:
                    continue
                now = self._clock()
                state = entry.state
                reset = now - state.window_start > self._window_seconds
                if reset:
                    state = WindowState(window_start=now, remaining=self._limit)
                # A wrapper re-registering its evicted key opens a new window too.
                reset = reset or recreated
                if reset:
                    entry.resets += 1
                state = replace(state, remaining=state.remaining - 1)
                entry.state = state
                result = self._result(state=state, now=now)
                if result.allowed:
                    entry.admitted += 1
                else:
                    entry.rejected += 1
                break

        if reset:
            logger.debug(
                "rate_limit.window_reset",
                extra={"operation": key, "limit": self._limit},
            )
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "operation": key,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "operation": key,
                    "limit": result.limit,
                    "window_s": self._window_seconds,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        return result

    def peek(self, key: str) -> RateLimitResult:
        """Describe whether the next call for ``key`` would be admitted.

        The reset rule is applied to the returned view only; stored state is
        left untouched.
        """
        entry, _ = self._lookup(key, create_missing=False)
        with entry.lock:
            now = self._clock()
            state = entry.state
        if now - state.window_start > self._window_seconds:
            state = WindowState(window_start=now, remaining=self._limit)

        reset_at = state.window_start + self._window_seconds
        allowed = state.remaining > 0
        return RateLimitResult(
            allowed=allowed,
            limit=self._limit,
            remaining=max(0, state.remaining),
            reset_at=reset_at,
            retry_after_seconds=None if allowed else max(0, int(math.ceil(reset_at - now))),
        )

    def evict_idle(self, idle_windows: int) -> list[str]:
        """Drop keys whose window began more than ``idle_windows`` windows ago.

        An idle key would be fully reset by its next admission anyway, so a
        fresh registration after eviction admits exactly what the kept state
        would have admitted.
        """
        if idle_windows < 1:
            raise ValueError("idle_windows must be >= 1")

        horizon = idle_windows * self._window_seconds
        evicted: list[str] = []
        with self._registry_lock:
            now = self._clock()
            for key, entry in list(self._entries.items()):
                with entry.lock:
                    if now - entry.state.window_start <= horizon:
                        continue
                    entry.evicted = True
                    del self._entries[key]
                    self._evicted_totals["admitted"] += entry.admitted
                    self._evicted_totals["rejected"] += entry.rejected
                    self._evicted_totals["resets"] += entry.resets
                    self._evicted_totals["evictions"] += 1
                evicted.append(key)

        if evicted:
            logger.info(
                "rate_limit.evicted",
                extra={"evicted_count": len(evicted), "idle_windows": idle_windows},
            )
        return evicted

    def keys(self) -> list[str]:
        with self._registry_lock:
            return list(self._entries)

    def stats(self) -> dict[str, int | float]:
        """Return lightweight counters without exposing per-key state.

        ``resets`` counts every new window opened after the first, including
        the fresh window a wrapper opens when its evicted key is re-registered.
        """

        with self._registry_lock:
            entries = list(self._entries.values())
            totals = dict(self._evicted_totals)

        return {
            "limit": self._limit,
            "window_seconds": self._window_seconds,
            "keys": len(entries),
            "admitted": totals["admitted"] + sum(e.admitted for e in entries),
            "rejected": totals["rejected"] + sum(e.rejected for e in entries),
            "resets": totals["resets"] + sum(e.resets for e in entries),
            "evictions": totals["evictions"],
        }

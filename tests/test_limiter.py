"""Tests for the RateLimiter facade that wraps callables."""

import asyncio
import math
from unittest.mock import Mock

import pytest

from callguard import (
    ConfigurationError,
    RateLimiter,
    RateLimitExceeded,
    UnregisteredOperationError,
)


def square(k: int) -> int:
    return k * k


@pytest.mark.parametrize("window", ["1Min", "20Sec", "3Hrs"])
def test_valid_window_constructs(window: str) -> None:
    limiter = RateLimiter(100, window)

    assert limiter.limit == 100
    assert limiter.window == window


@pytest.mark.parametrize("window", ["1Minutes", "1 Min", "Min", "0Hrs"])
def test_invalid_window_fails(window: str) -> None:
    with pytest.raises(ConfigurationError):
        RateLimiter(100, window)


@pytest.mark.parametrize("limit", [0, -1])
def test_non_positive_limit_fails(limit: int) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        RateLimiter(limit, "1Min")

    assert exc_info.value.code == "configuration_error"


def test_returns_original_result(limiter: RateLimiter) -> None:
    rate_limited_sqrt = limiter.wrap("sqrt", math.sqrt)

    assert rate_limited_sqrt(16.0) == 4.0


def test_returns_results_for_multiple_operations(limiter: RateLimiter) -> None:
    sqrt = limiter.wrap("sqrt", math.sqrt)
    cube = limiter.wrap("cube", lambda k: float(k * k * k))
    to_string = limiter.wrap("to_string", str)

    assert sqrt(16.0) == 4.0
    assert cube(4) == 64.0
    assert to_string(204.0) == "204.0"


def test_result_identity_is_preserved(limiter: RateLimiter) -> None:
    payload = {"items": [1, 2, 3]}
    echo = limiter.wrap("echo", lambda: payload)

    assert echo() is payload


def test_passes_positional_and_keyword_arguments(limiter: RateLimiter) -> None:
    def describe(name: str, *, greeting: str = "hello") -> str:
        """Greet someone."""
        return f"{greeting} {name}"

    guarded = limiter.wrap("describe", describe)

    assert guarded("ada", greeting="hi") == "hi ada"
    assert guarded.__name__ == "describe"
    assert guarded.__doc__ == "Greet someone."
    assert guarded.rate_limit_key == "describe"


def test_allows_calls_within_limit(limiter: RateLimiter) -> None:
    rate_limited_square = limiter.wrap("square", square)

    for i in range(99):
        rate_limited_square(i)

    assert limiter.status("square").remaining == 1


def test_exactly_limit_calls_succeed_then_fail(limiter: RateLimiter) -> None:
    operation = Mock(return_value=1)
    guarded = limiter.wrap("op", operation)

    for _ in range(100):
        assert guarded() == 1

    with pytest.raises(RateLimitExceeded) as exc_info:
        guarded()

    assert operation.call_count == 100
    error = exc_info.value
    assert error.code == "rate_limit_exceeded"
    assert error.operation == "op"
    assert error.result.allowed is False
    assert error.details["limit"] == 100
    assert error.details["retry_after"] == 60.0


def test_limit_of_one(clock: Mock) -> None:
    limiter = RateLimiter(1, "1Min", clock=clock)
    guarded = limiter.wrap("square", square)

    assert guarded(3) == 9
    with pytest.raises(RateLimitExceeded):
        guarded(3)


def test_operations_have_independent_quotas(clock: Mock) -> None:
    limiter = RateLimiter(10, "1Min", clock=clock)
    rate_limited_square = limiter.wrap("square", square)
    rate_limited_cube = limiter.wrap("cube", lambda k: k * k * k)

    for i in range(10):
        rate_limited_square(i)
    with pytest.raises(RateLimitExceeded):
        rate_limited_square(1)

    assert limiter.status("cube").remaining == 10
    for i in range(10):
        rate_limited_cube(i)


def test_same_key_shares_quota(clock: Mock) -> None:
    limiter = RateLimiter(2, "1Min", clock=clock)
    first = limiter.wrap("shared", square)
    second = limiter.wrap("shared", lambda k: -k)

    first(1)
    second(1)
    with pytest.raises(RateLimitExceeded):
        first(1)
    assert limiter.keys() == ["shared"]


def test_allows_after_time_window(clock: Mock) -> None:
    limiter = RateLimiter(10, "20Sec", clock=clock)
    rate_limited_square = limiter.wrap("square", square)

    with pytest.raises(RateLimitExceeded):
        for i in range(11):
            rate_limited_square(i)

    clock.return_value += 20.5
    for i in range(9):
        rate_limited_square(i)
    assert limiter.status("square").remaining == 1


def test_allows_after_time_window_with_real_clock() -> None:
    import time

    limiter = RateLimiter(2, "1Sec")
    guarded = limiter.wrap("square", square)

    guarded(1)
    guarded(2)
    with pytest.raises(RateLimitExceeded):
        guarded(3)

    time.sleep(1.1)
    assert guarded(4) == 16


def test_registration_is_eager(clock: Mock) -> None:
    limiter = RateLimiter(1, "10Sec", clock=clock)
    limiter.wrap("square", square)

    assert limiter.keys() == ["square"]
    # The window is measured from wrap time, not from the first call.
    clock.return_value += 11
    assert limiter.admit("square").remaining == 0
    assert limiter.stats()["resets"] == 1


def test_decorator_form(clock: Mock) -> None:
    limiter = RateLimiter(1, "1Min", clock=clock)

    @limiter.limited("greet")
    def greet(name: str) -> str:
        return f"hi {name}"

    assert greet("ada") == "hi ada"
    with pytest.raises(RateLimitExceeded):
        greet("bob")


def test_admit_unregistered_key_fails(limiter: RateLimiter) -> None:
    with pytest.raises(UnregisteredOperationError):
        limiter.admit("never-wrapped")


def test_wrap_rejects_bad_arguments(limiter: RateLimiter) -> None:
    with pytest.raises(TypeError):
        limiter.wrap("not-callable", 42)  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        limiter.wrap("", square)


def test_operation_errors_propagate_and_still_count(clock: Mock) -> None:
    limiter = RateLimiter(2, "1Min", clock=clock)
    failing = limiter.wrap("failing", Mock(side_effect=KeyError("boom")))

    with pytest.raises(KeyError):
        failing()

    assert limiter.status("failing").remaining == 1


def test_evicted_wrapper_keeps_working(clock: Mock) -> None:
    limiter = RateLimiter(1, "10Sec", clock=clock, evict_idle_windows=1)
    guarded = limiter.wrap("square", square)
    guarded(2)

    clock.return_value += 15
    assert limiter.evict_idle() == ["square"]
    assert limiter.keys() == []

    assert guarded(3) == 9
    with pytest.raises(RateLimitExceeded):
        guarded(3)
    assert limiter.keys() == ["square"]


def test_stats_counts_admissions(clock: Mock) -> None:
    limiter = RateLimiter(1, "1Min", clock=clock)
    guarded = limiter.wrap("square", square)

    guarded(1)
    with pytest.raises(RateLimitExceeded):
        guarded(1)

    stats = limiter.stats()
    assert stats["keys"] == 1
    assert stats["admitted"] == 1
    assert stats["rejected"] == 1
    assert stats["window_seconds"] == 60


@pytest.mark.parametrize("evict_idle_windows", [0, -1, True, 1.5, "2"])
def test_invalid_eviction_horizon_fails(evict_idle_windows) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        RateLimiter(10, "1Min", evict_idle_windows=evict_idle_windows)

    assert exc_info.value.code == "configuration_error"


def test_reregistered_evicted_key_counts_as_reset(clock: Mock) -> None:
    limiter = RateLimiter(2, "10Sec", clock=clock)
    guarded = limiter.wrap("square", square)
    guarded(2)

    clock.return_value += 25
    limiter.evict_idle(2)
    guarded(3)

    assert limiter.stats()["resets"] == 1


def test_coroutine_function_is_admitted_at_call_time(clock: Mock) -> None:
    limiter = RateLimiter(1, "1Min", clock=clock)

    async def fetch(value: int) -> int:
        return value * 2

    guarded = limiter.wrap("fetch", fetch)

    coro = guarded(21)
    assert asyncio.iscoroutine(coro)
    # The permit is spent when the call is made, before anything is awaited.
    assert limiter.status("fetch").remaining == 0
    assert asyncio.run(coro) == 42

    with pytest.raises(RateLimitExceeded):
        guarded(1)

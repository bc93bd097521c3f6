"""Pytest configuration and fixtures shared across all test modules.

Sets APP_ENV before any settings import so a developer's local
.env.development file never leaks into test runs.
"""

import os
from unittest.mock import Mock

import pytest

# Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

from callguard import RateLimiter  # noqa: E402


@pytest.fixture
def clock() -> Mock:
    """Deterministic clock; advance it by assigning ``clock.return_value``."""

    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(clock: Mock) -> RateLimiter:
    return RateLimiter(100, "1Min", clock=clock)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so each test sees its own environment."""

    from callguard.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()

"""callguard: fixed-window rate limiting for arbitrary callables."""

from callguard.adapters.rate_limit.base import RateLimitResult, WindowState
from callguard.core.errors import (
    AppError,
    ConfigurationError,
    RateLimitExceeded,
    UnregisteredOperationError,
)
from callguard.limiter import RateLimiter

__all__ = [
    "AppError",
    "ConfigurationError",
    "RateLimitExceeded",
    "RateLimitResult",
    "RateLimiter",
    "UnregisteredOperationError",
    "WindowState",
]

"""Limiter configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Nothing is read at import time; ``get_settings()`` resolves and caches the
settings on first use.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from callguard.core.errors import ConfigurationError
from callguard.core.window import parse_window


# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}


def _current_env() -> str:
    return os.getenv("APP_ENV", "development")


def _load_env_file() -> None:
    """Populate os.environ from the .env file of the current APP_ENV.

    Pydantic nested BaseSettings don't inherit env_file, so the file is
    loaded into the environment first. Variables already set by the host
    process win over the file.
    """

    env_path = PROJECT_ROOT / ENV_FILE_MAP.get(_current_env(), ".env.development")
    # Only load from file if it exists (deployments might inject via env vars only)
    if env_path.is_file():
        load_dotenv(env_path, override=False)


def _build_limiter_settings() -> "LimiterSettings":
    """Build limiter settings from environment."""

    return LimiterSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


class LimiterSettings(BaseSettings):
    """Default quota policy for limiters built via ``RateLimiter.from_settings``."""

    limit: int = Field(
        100,
        description="Maximum number of admitted calls per window and operation",
        ge=1,
    )
    window: str = Field(
        "1Min",
        description="Window length as <integer><unit>, unit one of Sec, Min, Hrs",
    )
    evict_idle_windows: int = Field(
        2,
        description="Idle windows after which evict_idle() drops an operation key",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATELIMIT_",
        case_sensitive=False,
    )

    @field_validator("window")
    @classmethod
    def _validate_window(cls, value: str) -> str:
        try:
            parse_window(value)
        except ConfigurationError as exc:
            # Re-raised as ValueError so pydantic reports it as a field error.
            raise ValueError(exc.message) from exc
        return value

    @property
    def window_seconds(self) -> int:
        return parse_window(self.window)


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        0,
        description="Rotate the log file past this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(3, description="Rotated files to keep", ge=0)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on first use if settings are invalid.
    """

    app_env: str = Field(default_factory=_current_env)
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, built on first call.

    Nested settings are created via default_factory so env loading works.
    Call ``get_settings.cache_clear()`` to pick up environment changes.

    Raises:
        pydantic.ValidationError: If the environment holds invalid values.
    """

    _load_env_file()
    return Settings()

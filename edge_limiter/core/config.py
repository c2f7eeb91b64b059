"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Malformed values (e.g. ``RATE_LIMIT_IP=abc``) never abort startup: the field
falls back to its documented default and a warning is logged.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, ValidationInfo, ValidatorFunctionWrapHandler, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and os.getenv("TESTING", "").lower() != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


class _FallbackSettings(BaseSettings):
    """Base class whose fields fall back to their default on invalid input."""

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(
        cls,
        value: Any,
        handler: ValidatorFunctionWrapHandler,
        info: ValidationInfo,
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            pass

        # Choice fields are lowercase ("MEMORY" means "memory").
        if isinstance(value, str) and value != value.strip().lower():
            try:
                return handler(value.strip().lower())
            except ValidationError:
                pass

        field = cls.model_fields[info.field_name]
        logger.warning(
            "config.invalid_value",
            extra={
                "field": info.field_name,
                "settings_group": cls.__name__,
                "fallback": field.default,
            },
        )
        return field.default


class RateLimitSettings(_FallbackSettings):
    """Rate limiting policy and backend selection.

    Variable names match the deployment environment of the limiter
    (``RATE_LIMIT_IP``, ``BLOCK_TIME``...), hence no prefix.
    """

    rate_limit_ip: int = Field(
        5,
        description="Maximum requests per second for a client IP",
        ge=1,
    )
    rate_limit_token: int = Field(
        10,
        description="Maximum requests per second for an API token",
        ge=1,
    )
    block_time: float = Field(
        100.0,
        description="Seconds an identifier stays blocked after exceeding its limit",
        ge=0,
    )
    enable_ip_limit: bool = Field(
        True,
        description="Apply the IP limit to requests without a token",
    )
    enable_token_limit: bool = Field(
        True,
        description="Apply the token limit to requests carrying a token",
    )
    rate_limit_backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Window store: shared Redis or in-process memory",
    )
    rate_limit_failure_mode: Literal["closed", "open"] = Field(
        "closed",
        description="On store failure: reject with 500 (closed) or admit (open)",
    )
    rate_limit_token_header: str = Field(
        "API_KEY",
        description="Request header carrying the API token",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include Retry-After header when throttling",
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )


class RedisSettings(_FallbackSettings):
    """Shared store connection settings."""

    url: str = Field(
        "localhost:6379",
        description="Redis address, bare host:port or redis:// URL",
    )
    timeout_seconds: float = Field(
        5.0,
        description="Bound for connecting and for each rate limit decision",
        gt=0,
    )
    key_prefix: str = Field(
        "",
        description="Optional namespace prepended to count/block keys",
    )
    atomic: bool = Field(
        False,
        description="Run the decision as a single Lua script (no overshoot)",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
        extra="ignore",
    )


class LogSettings(_FallbackSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="json or plain")
    output: Literal["stdout", "file"] = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate file after this size (0 disables)", ge=0)
    backup_count: int = Field(3, description="Rotated files to keep", ge=0)
    request_id_header: str = Field("X-Request-ID", description="Correlation header")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
        extra="ignore",
    )


class AppSettings(_FallbackSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Period of the in-memory store sweep (0 disables it)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
        extra="ignore",
    )


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


def _build_redis_settings() -> RedisSettings:
    return RedisSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_app_settings() -> AppSettings:
    return AppSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Nested groups are created via default_factory so env loading works.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()

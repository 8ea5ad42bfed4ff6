"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Variable names match the deployment contract of the service (DATABASE_URL,
RATE_LIMIT_PER_SECOND, CORS_ORIGINS, ...), so most settings groups use an
empty or short prefix.
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvdb.utils.intervals import CLEANUP_DISABLED, parse_interval


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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_database_settings() -> "DatabaseSettings":
    """Build database settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return DatabaseSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    See _build_database_settings() for rationale about the type ignore.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def parse_origins(origins: str | None) -> list[str]:
    """Parse a comma-separated origin list, keeping configuration order.

    Examples:
        >>> parse_origins("https://a.example.org, *.example.com")
        ['https://a.example.org', '*.example.com']
        >>> parse_origins("")
        []
    """
    if not origins:
        return []
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


def parse_listen_address(listen_on: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address.

    Raises:
        ValueError: If the port is missing or not a valid TCP port.
    """
    host, sep, port = listen_on.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Invalid listen address: {listen_on!r} (expected host:port)")
    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"Invalid listen port: {port_number}")
    return host.strip("[]"), port_number


class DatabaseSettings(BaseSettings):
    """Storage backend connection settings."""

    url: str = Field(
        ...,
        description="Database connection string (postgres:// URLs use asyncpg)",
    )
    pool_size: int = Field(
        5,
        description="Maximum number of pooled connections",
        ge=1,
    )
    max_overflow: int = Field(
        0,
        description="Connections allowed beyond pool_size under load",
        ge=0,
    )
    pool_timeout: float = Field(
        30.0,
        description="Seconds to wait for a pooled connection before failing",
        gt=0,
    )
    echo: bool = Field(
        False,
        description="Log emitted SQL statements",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-client token bucket configuration."""

    per_second: float = Field(
        ...,
        description="Tokens added to each client bucket per second",
        gt=0,
    )
    burst_size: int = Field(
        ...,
        description="Bucket capacity (requests allowed in a burst)",
        ge=1,
    )
    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    compact_interval_seconds: float = Field(
        60.0,
        description="How often idle client buckets are discarded",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    listen_on: str = Field(
        "0.0.0.0:3005",
        description="Address the HTTP server binds to (host:port)",
    )
    cors_origins: str = Field(
        "",
        description="Comma-separated allowed origins; supports '*' and '*.domain' rules",
    )
    key_cleanup_every_s: float = Field(
        0.0,
        description="Seconds between retention sweeps (0 disables cleanup)",
        ge=0,
    )
    delete_unused_keys_after: str = Field(
        CLEANUP_DISABLED,
        description="Idle interval after which keys are deleted (e.g. '30 days')",
    )
    max_value_length: int = Field(
        ...,
        description="Maximum value size in bytes",
        ge=0,
    )
    max_key_name_length: int = Field(
        ...,
        description="Maximum key name size in bytes",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
    )

    @field_validator("delete_unused_keys_after")
    @classmethod
    def _check_retention_interval(cls, value: str) -> str:
        # Fail at startup instead of on the first sweep
        parse_interval(value)
        return value

    @field_validator("listen_on")
    @classmethod
    def _check_listen_on(cls, value: str) -> str:
        parse_listen_address(value)
        return value

    @property
    def allowed_origins(self) -> list[str]:
        return parse_origins(self.cors_origins)

    @property
    def retention_threshold(self) -> timedelta | None:
        return parse_interval(self.delete_unused_keys_after)

    @property
    def cleanup_enabled(self) -> bool:
        return self.key_cleanup_every_s > 0 and self.retention_threshold is not None


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate file after this many bytes (0 = no rotation)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.
    """

    app_env: str = APP_ENV
    database: DatabaseSettings = Field(default_factory=_build_database_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    def sanitized(self) -> dict[str, Any]:
        """Return the configuration as a dict with credentials removed."""
        data = self.model_dump()
        data["database"]["url"] = "REDACTED"
        return data


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()

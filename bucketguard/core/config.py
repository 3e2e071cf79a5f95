"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


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
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()


def _build_redis_settings() -> "RedisSettings":
    """Build shared store settings from environment."""

    return RedisSettings()


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


class RateLimitSettings(BaseSettings):
    """Token bucket policy and limiter behaviour.

    These values are read once at startup and frozen into a
    ``TokenBucketPolicy``; changing the environment afterwards has no effect
    on a running process.
    """

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting on protected routes",
    )
    refill_rate_per_second: float = Field(
        1.0,
        description="Tokens granted to a bucket per elapsed second",
        gt=0,
    )
    max_tokens: float = Field(
        10.0,
        description="Bucket capacity (ceiling for refill)",
        gt=0,
    )
    cost_per_request: float = Field(
        10.0,
        description="Tokens debited per admitted request",
        gt=0,
    )
    record_ttl_seconds: int = Field(
        3600,
        description="Store-side expiry applied on every bucket write",
        ge=1,
    )
    key_prefix: str = Field(
        "rate_limit:",
        description="Namespace prepended to every bucket key in the store",
    )
    forwarded_header: str = Field(
        "x-forwarded-for",
        description="Client-supplied forwarding header used as identity when present",
    )
    include_headers: bool = Field(
        True,
        description="Include a Retry-After header when throttling",
    )
    stats_identity_override: bool = Field(
        False,
        description="Allow the stats endpoint to report identities other than the caller's",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared store (Redis) connection configuration."""

    url: str | None = Field(
        None,
        description="Full connection URL; takes priority over host/port. Use memory:// for an in-process store",
    )
    host: str = Field("localhost", description="Redis host")
    port: int = Field(6379, description="Redis port")
    username: str | None = Field(None, description="Redis ACL username")
    password: str | None = Field(None, description="Redis password")
    db: int = Field(0, description="Redis logical database index")
    socket_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for a single store call",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        5.0,
        description="Upper bound for establishing the connection",
        gt=0,
    )
    reconnect_interval_seconds: float = Field(
        2.0,
        description="Delay between reconnection probes",
        gt=0,
    )
    max_reconnect_attempts: int = Field(
        0,
        description="Failed connect or reconnect retries before giving up (0 = unlimited)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )

    @property
    def is_in_memory(self) -> bool:
        return bool(self.url) and self.url.startswith("memory://")

    def masked_endpoint(self) -> str:
        """Describe the endpoint for logs without credentials."""

        if self.url:
            scheme, _, rest = self.url.partition("://")
            host_part = rest.rsplit("@", 1)[-1]
            return f"{scheme}://{host_part}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()

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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_CSRF_SECRET = "default-csrf-secret-change-in-production"


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_app_settings() -> "AppSettings":
    return AppSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()


def _build_csrf_settings() -> "CsrfSettings":
    """Build CSRF settings from environment.

    The secret has a development default; production deployments are
    expected to override it via CSRF_SECRET.
    """

    return CsrfSettings()


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    security_headers_enabled: bool = Field(
        True,
        description="Attach CSP, frame and sniffing protection headers to every response",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable per-identifier rate limiting on API routes",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Interval between background sweeps of expired identifiers",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CsrfSettings(BaseSettings):
    """CSRF token configuration."""

    secret: str = Field(
        DEFAULT_CSRF_SECRET,
        description="HMAC key used to sign CSRF tokens",
        min_length=1,
    )
    max_age_seconds: int = Field(
        3600,
        description="Token validity window in seconds",
        ge=1,
    )
    cookie_name: str = Field("csrf-token", description="Cookie carrying the CSRF token")
    header_name: str = Field("x-csrf-token", description="Header clients echo the token in")
    anonymous_cookie_name: str = Field(
        "anon-session-id",
        description="Cookie carrying the anonymous session id for unauthenticated users",
    )
    cookie_secure: bool | None = Field(
        None,
        description="Force the Secure cookie flag; defaults to APP_ENV == production",
    )

    model_config = SettingsConfigDict(
        env_prefix="CSRF_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    csrf: CsrfSettings = Field(default_factory=_build_csrf_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def csrf_cookie_secure(self) -> bool:
        if self.csrf.cookie_secure is not None:
            return self.csrf.cookie_secure
        return self.is_production


# Global settings instance - composed from domain-specific settings
settings = Settings()

"""Configuration management for planchat."""

import logging
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PLANCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "planchat"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/planchat.db"

    # Planning backend (the remote orchestration service)
    planning_api_url: str = ""

    # Base URL of the relay the chat client talks to
    dashboard_url: str = "http://localhost:8000"

    # Session warmth window
    session_timeout_seconds: float = 15 * 60

    # Chat behaviour
    history_limit: int = 20  # Prior turns sent with each message
    phase_clear_delay: float = 1.0  # Seconds before a terminal phase is cleared
    readiness_fallback_delay: float = 1.0  # Seconds before implicit ready-for-approval

    # Timeouts (seconds)
    http_timeout: float = 30
    stream_timeout: float = 300  # Read timeout while the plan streams

    # Entity verification after approval
    verification_initial_delay: float = 0.5
    verification_interval: float = 1.0
    verification_max_attempts: int = Field(default=10, ge=1)

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_chat: str = "20/minute"

    @field_validator("planning_api_url", "dashboard_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("rate_limit_chat")
    @classmethod
    def validate_rate_limit(cls, v: str) -> str:
        """Validate rate limit format (e.g., '20/minute')."""
        if "/" not in v:
            raise ValueError("Rate limit must be in format 'N/period' (e.g., '20/minute')")
        return v


settings = Settings()


def get_config_dict() -> dict[str, Any]:
    """Get config as dict for API responses."""
    return {
        "app_name": settings.app_name,
        "debug": settings.debug,
        "planning_api_configured": bool(settings.planning_api_url),
        "session_timeout_seconds": settings.session_timeout_seconds,
        "history_limit": settings.history_limit,
    }


def validate_critical_settings() -> None:
    """Validate critical settings and log warnings for potential issues."""
    if not settings.planning_api_url:
        logger.warning(
            "PLANCHAT_PLANNING_API_URL not set - planning chat requests will fail. "
            "Set this environment variable or add to .env file."
        )

    # Warn about debug mode in production-like settings
    if settings.debug and settings.host == "0.0.0.0":
        logger.warning(
            "Running in debug mode with public host binding (0.0.0.0). "
            "Disable debug mode for production deployments."
        )


validate_critical_settings()

"""
Configuration module for the chat booking backend.

Loads environment variables and provides configuration settings for the
booking database, the Redis session store and the messaging transport.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy connection string for bookings
        redis_url: Redis connection string for conversation sessions
        session_ttl_seconds: Sliding expiration window for a session
        booking_retry_attempts: Attempts before a write conflict becomes "system busy"
        messaging_channel_token: Bearer token for the chat platform API
    """

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./booking.db",
        alias="DATABASE_URL",
        description="SQLAlchemy connection string"
    )

    # Session store
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis connection string for conversation sessions"
    )

    session_ttl_seconds: int = Field(
        default=1800,
        gt=0,
        alias="SESSION_TTL_SECONDS",
        description="Session expiration, refreshed on every read"
    )

    session_key_prefix: str = Field(
        default="line:conversation:",
        alias="SESSION_KEY_PREFIX",
        description="Prefix of the per-user session key"
    )

    session_lock_timeout_seconds: float = Field(
        default=10,
        gt=0,
        alias="SESSION_LOCK_TIMEOUT_SECONDS",
        description="Lease of the per-user session lock"
    )

    session_lock_wait_seconds: float = Field(
        default=5,
        ge=0,
        alias="SESSION_LOCK_WAIT_SECONDS",
        description="Maximum wait to acquire the per-user session lock"
    )

    # Booking creation
    booking_retry_attempts: int = Field(
        default=3,
        ge=1,
        alias="BOOKING_RETRY_ATTEMPTS",
        description="Attempts on write conflicts before reporting system busy"
    )

    booking_retry_wait_seconds: float = Field(
        default=0.1,
        ge=0,
        alias="BOOKING_RETRY_WAIT_SECONDS",
        description="Pause between write conflict retries"
    )

    booking_buffer_minutes: int = Field(
        default=0,
        ge=0,
        alias="BOOKING_BUFFER_MINUTES",
        description="Minutes added to the candidate end for conflict checks"
    )

    reset_on_conflict: bool = Field(
        default=False,
        alias="RESET_ON_CONFLICT",
        description="Reset the conversation instead of keeping it at confirmation on a slot conflict"
    )

    note_max_length: int = Field(
        default=500,
        gt=0,
        alias="NOTE_MAX_LENGTH",
        description="Customer notes are truncated to this many characters"
    )

    # Messaging transport
    push_monthly_quota: int = Field(
        default=500,
        ge=0,
        alias="PUSH_MONTHLY_QUOTA",
        description="Push messages allowed per tenant per calendar month"
    )

    messaging_api_base_url: str = Field(
        default="https://api.line.me/v2/bot",
        alias="MESSAGING_API_BASE_URL",
        description="Base URL of the chat platform messaging API"
    )

    messaging_channel_token: Optional[str] = Field(
        default=None,
        alias="MESSAGING_CHANNEL_TOKEN",
        description="Channel access token for the messaging API"
    )

    messaging_timeout_seconds: float = Field(
        default=10,
        gt=0,
        alias="MESSAGING_TIMEOUT_SECONDS",
        description="HTTP timeout for messaging API calls"
    )

    # Runtime
    app_env: str = Field(
        default="development",
        alias="APP_ENV",
        description="Environment name: development, production or test"
    )

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Minimum log level"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Returns:
        Settings instance with loaded configuration

    Raises:
        pydantic.ValidationError: If an environment value is invalid
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None

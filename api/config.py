"""
API Configuration Management

Provides centralized configuration for the scheduling assistant service:
environment profile, database, outbound email, decision engine and nudge
thresholds.

Design Considerations:
- Environment variables and .env file as the single configuration source
- Secrets held as SecretStr and never logged
- Validation at startup rather than at first use
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr, field_validator, model_validator


class EnvironmentType(str, Enum):
    """Valid environment types for configuration context."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class SchedulerSettings(BaseSettings):
    """
    Scheduling assistant settings with environment-specific defaults.

    Uses pydantic-settings for environment loading and validation. Provider
    credentials default to empty so settings load in tests; building the
    production service requires them.
    """
    # Environment Configuration
    ENVIRONMENT: EnvironmentType = Field(
        default=EnvironmentType.DEVELOPMENT,
        description="Runtime environment context"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    # API Settings
    API_TITLE: str = Field(
        default="Meeting Scheduling Assistant API",
        description="API title for documentation"
    )
    API_DESCRIPTION: str = Field(
        default="Email-driven meeting scheduling: inbound webhook, nudge sweep and session inspection",
        description="API description for documentation"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    # Storage
    DATABASE_URL: str = Field(
        default="sqlite:///data/scheduler.db",
        description="SQLAlchemy database URL"
    )
    SQL_ECHO: bool = Field(
        default=False,
        description="Log emitted SQL statements"
    )

    # Outbound email
    SENDER_ADDRESS: str = Field(
        default="scheduler@example.com",
        description="Assistant mailbox address used as From and for routing tokens"
    )
    POSTMARK_SERVER_TOKEN: SecretStr = Field(
        default=SecretStr(""),
        description="Postmark server API token"
    )
    POSTMARK_API_URL: str = Field(
        default="https://api.postmarkapp.com",
        description="Postmark API base URL"
    )

    # Decision engine
    GROQ_API_KEY: SecretStr = Field(
        default=SecretStr(""),
        description="Groq API key"
    )
    DECISION_TIMEOUT_SECONDS: float = Field(
        default=25.0,
        gt=0,
        description="Upper bound for one router or executor call"
    )

    # Nudge sweep
    NUDGE_FIRST_AFTER_MINUTES: float = Field(
        default=24 * 60,
        gt=0,
        description="Minutes after a request before the first reminder"
    )
    NUDGE_SECOND_AFTER_MINUTES: float = Field(
        default=48 * 60,
        gt=0,
        description="Minutes after the first reminder before the second"
    )
    ESCALATE_AFTER_MINUTES: float = Field(
        default=72 * 60,
        gt=0,
        description="Minutes after the second reminder before escalating to the organizer"
    )
    CRON_SECRET: Optional[SecretStr] = Field(
        default=None,
        description="Bearer token required by the nudge endpoint when set"
    )

    @field_validator("SENDER_ADDRESS")
    @classmethod
    def validate_sender_address(cls, value: str) -> str:
        """Sender must be a plain address without a plus tag."""
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("SENDER_ADDRESS must be an email address")
        if "+" in value.split("@", 1)[0]:
            raise ValueError("SENDER_ADDRESS must not contain a plus tag")
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {value}")
        return value

    @model_validator(mode="after")
    def validate_nudge_thresholds(self) -> "SchedulerSettings":
        if not (
            self.NUDGE_FIRST_AFTER_MINUTES
            <= self.NUDGE_SECOND_AFTER_MINUTES
            <= self.ESCALATE_AFTER_MINUTES
        ):
            raise ValueError("Nudge thresholds must be non-decreasing")
        return self

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> SchedulerSettings:
    """
    Retrieve validated settings, loaded once per process.

    Returns:
        Validated settings object

    Raises:
        ValidationError: If configuration fails validation
    """
    return SchedulerSettings()

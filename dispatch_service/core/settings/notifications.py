"""Notification dispatch settings.

Environment variables use NOTIFY_ prefix.
Example: NOTIFY_MAX_ATTEMPTS=5, NOTIFY_MAX_CONCURRENCY=16
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationSettings(BaseSettings):
    """Retry, fan-out and retention knobs for the orchestrator."""

    # Push retry/backoff
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Push attempts per token, first attempt included",
    )
    initial_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=60.0,
        description="Delay in seconds before the first retry",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Factor applied to the delay after each retry",
    )
    max_delay: float | None = Field(
        default=None,
        ge=0.0,
        description="Optional cap on a single backoff delay in seconds",
    )

    # Fan-out
    max_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Per-token push units running at the same time",
    )
    dispatch_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Deadline for one recipient's whole push fan-out",
    )

    # Queries / retention
    page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum notifications returned by list_notifications",
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Read notifications older than this are removed by cleanup",
    )
    stats_window_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 90,
        description="Default look-back window for delivery statistics",
    )

    @model_validator(mode="after")
    def validate_delay_cap(self) -> NotificationSettings:
        """A delay cap below the first delay would shrink every retry."""
        if self.max_delay is not None and self.max_delay < self.initial_delay:
            msg = "max_delay must be greater than or equal to initial_delay"
            raise ValueError(msg)
        return self

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

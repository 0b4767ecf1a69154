"""Pydantic schemas for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dispatch_service.features.notifications.enums import DeliveryChannel
from dispatch_service.features.notifications.models import Notification

# ============================================================================
# Push Payload
# ============================================================================


class PushPayload(BaseModel):
    """Content of a push notification.

    ``data`` values are sent as strings; FCM rejects any other type.
    ``image_url`` is passed through as given (absolute or app-relative).
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, max_length=500, description="Notification title")
    body: str = Field(..., min_length=1, description="Notification body")
    data: dict[str, str] = Field(default_factory=dict, description="Key/value data delivered to the app")
    image_url: str | None = Field(default=None, description="Image shown with the notification")

    @field_validator("data", mode="before")
    @classmethod
    def stringify_data(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value


# ============================================================================
# Preference Schemas
# ============================================================================


class PreferencesRead(BaseModel):
    """A user's channel and category switches."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email_enabled: bool
    push_enabled: bool
    appointments: bool
    messages: bool
    prescriptions: bool
    investigations: bool
    marketing: bool


class PreferencesUpdate(BaseModel):
    """Partial preference update; omitted fields keep their value."""

    model_config = ConfigDict(extra="forbid")

    email_enabled: bool | None = None
    push_enabled: bool | None = None
    appointments: bool | None = None
    messages: bool | None = None
    prescriptions: bool | None = None
    investigations: bool | None = None
    marketing: bool | None = None


# ============================================================================
# Dispatch Results
# ============================================================================


class EmailStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class EmailDispatch(BaseModel):
    """Outcome of the email channel for one notification."""

    model_config = ConfigDict(frozen=True)

    status: EmailStatus
    reason: str | None = Field(default=None, description="Skip reason or provider error")


class DispatchSummary(BaseModel):
    """Per-token push outcome counts.

    ``targeted`` counts distinct tokens; ``sent + invalid + failed`` always
    equals ``targeted``.
    """

    model_config = ConfigDict(frozen=True)

    targeted: int = 0
    sent: int = 0
    invalid: int = 0
    failed: int = 0
    skipped_reason: str | None = Field(default=None, description="Why push was not attempted at all")

    @classmethod
    def skipped(cls, reason: str) -> DispatchSummary:
        return cls(skipped_reason=reason)


class NotifyResult(BaseModel):
    """Result of ``NotificationOrchestrator.notify``."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    notification: Notification
    email: EmailDispatch
    push: DispatchSummary


class DeliveryStats(BaseModel):
    """Audit-derived delivery counts over a time window."""

    channel: DeliveryChannel
    since: datetime
    until: datetime
    total: int
    sent: int
    invalid: int
    failed: int
    failure_rate_percent: float

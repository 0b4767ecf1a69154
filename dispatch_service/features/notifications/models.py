"""SQLAlchemy models for the notifications feature."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from dispatch_service.core.database import Base, UUIDPKMixin, UUIDTimestampedBase, utcnow
from dispatch_service.features.notifications.enums import (
    DeliveryChannel,
    DeviceType,
    NotificationPriority,
)


def _enum_column(enum_cls: type[StrEnum], name: str) -> Enum:
    """Store enum *values* as plain strings, portable across dialects."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
    )


class Notification(UUIDTimestampedBase):
    """In-app notification record.

    Created on every dispatch; afterwards only the read flag changes. Rows
    are removed by the retention sweep once read and old enough.

    Indexes:
        - (user_id, created_at) for the newest-first inbox listing
        - (user_id, read) for unread filters and bulk mark-read
    """

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owning user",
    )
    kind: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="info, success, warning, alert or a business kind",
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Notification title",
    )
    body: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
        comment="Notification message",
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        _enum_column(NotificationPriority, "notification_priority"),
        default=NotificationPriority.MEDIUM,
        nullable=False,
        comment="high, medium or low",
    )
    read: Mapped[bool] = mapped_column(
        Boolean(),
        default=False,
        nullable=False,
        comment="Whether the user has read the notification",
    )
    action_url: Mapped[str | None] = mapped_column(
        String(2048),
        nullable=True,
        comment="Link opened by the notification's call to action",
    )

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id!r}, kind={self.kind!r}, read={self.read})>"


class NotificationPreference(UUIDTimestampedBase):
    """Per-user channel and category switches.

    One row per user, created lazily with defaults: both channels on, every
    category on except marketing.
    """

    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Owning user",
    )
    email_enabled: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    push_enabled: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    appointments: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    messages: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    prescriptions: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    investigations: Mapped[bool] = mapped_column(Boolean(), default=True, nullable=False)
    marketing: Mapped[bool] = mapped_column(Boolean(), default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<NotificationPreference(user_id={self.user_id!r})>"


class DeviceToken(UUIDTimestampedBase):
    """Push device token registered by a user's browser or app.

    The token value is globally unique: registering a known token moves it
    to the registering user. Rows are deleted when the push provider reports
    the token permanently invalid.
    """

    __tablename__ = "device_tokens"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Owning user",
    )
    token: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        unique=True,
        comment="Provider registration token",
    )
    device_type: Mapped[DeviceType] = mapped_column(
        _enum_column(DeviceType, "device_type"),
        nullable=False,
        comment="web, ios or android",
    )
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(255), nullable=True)
    enabled: Mapped[bool] = mapped_column(
        Boolean(),
        default=True,
        nullable=False,
        comment="Disabled tokens are kept but never targeted",
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Last registration or push attempt",
    )

    def __repr__(self) -> str:
        return f"<DeviceToken(id={self.id}, user_id={self.user_id!r}, type={self.device_type})>"


class DeliveryAuditEntry(Base, UUIDPKMixin):
    """Append-only record of one final delivery outcome.

    One row per token for push, one per send for email. No foreign keys:
    audit retention is independent of notifications and tokens.
    """

    __tablename__ = "delivery_audit_entries"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Recipient user",
    )
    channel: Mapped[DeliveryChannel] = mapped_column(
        _enum_column(DeliveryChannel, "delivery_channel"),
        nullable=False,
        comment="email or push",
    )
    token_id: Mapped[UUID | None] = mapped_column(
        Uuid(),
        nullable=True,
        comment="Device token the push attempt targeted",
    )
    success: Mapped[bool] = mapped_column(Boolean(), nullable=False)
    invalid: Mapped[bool] = mapped_column(
        Boolean(),
        default=False,
        nullable=False,
        comment="Provider reported the token permanently invalid",
    )
    error_code: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Provider error code or message of the final attempt",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="When the outcome was recorded",
    )
    context: Mapped[dict[str, Any]] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"),
        default=dict,
        nullable=False,
        comment="Notification title and caller metadata",
    )

    __table_args__ = (
        Index("ix_delivery_audit_channel_timestamp", "channel", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<DeliveryAuditEntry(user_id={self.user_id!r}, channel={self.channel}, "
            f"success={self.success}, invalid={self.invalid})>"
        )

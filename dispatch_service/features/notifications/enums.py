"""Enumerations for the notifications feature."""

from __future__ import annotations

from enum import StrEnum


class NotificationKind(StrEnum):
    """Well-known notification kinds.

    The ``kind`` column is a free string: business workflows also use their
    own kinds (``prescription``, ``appointment`` ...).
    """

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ALERT = "alert"


class NotificationPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DeliveryChannel(StrEnum):
    """External delivery channels. The in-app record is not a channel."""

    EMAIL = "email"
    PUSH = "push"


class NotificationCategory(StrEnum):
    """Preference categories a user can switch on and off."""

    APPOINTMENTS = "appointments"
    MESSAGES = "messages"
    PRESCRIPTIONS = "prescriptions"
    INVESTIGATIONS = "investigations"
    MARKETING = "marketing"

    @property
    def is_clinical(self) -> bool:
        return self is not NotificationCategory.MARKETING


CLINICAL_CATEGORIES: tuple[NotificationCategory, ...] = tuple(
    category for category in NotificationCategory if category.is_clinical
)


class DeviceType(StrEnum):
    WEB = "web"
    IOS = "ios"
    ANDROID = "android"

"""Notification dispatch: in-app records, email and push delivery.

Import the orchestrator from ``dispatch_service.features.notifications.service``;
this package only re-exports the lightweight enums.
"""

from __future__ import annotations

from dispatch_service.features.notifications.enums import (
    DeliveryChannel,
    DeviceType,
    NotificationCategory,
    NotificationKind,
    NotificationPriority,
)

__all__ = [
    "DeliveryChannel",
    "DeviceType",
    "NotificationCategory",
    "NotificationKind",
    "NotificationPriority",
]

"""Typed view over a user's notification preferences.

A ``NotificationPreference`` row is flattened into a ``ChannelMatrix``: one
boolean per (category, channel) pair. Eligibility checks read the matrix
through enum keys only, so an unknown category or priority is a type error
rather than a silently-false lookup.

Email eligibility:
    email channel on AND priority tier on.

    ======== ==========================================================
    Priority Tier is on when
    ======== ==========================================================
    HIGH     always
    MEDIUM   the given category is on, or without a category, any
             clinical category (appointments, messages, prescriptions,
             investigations) is on
    LOW      marketing is on
    ======== ==========================================================

Push eligibility:
    push channel on AND, when a category is given, that category is on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from dispatch_service.features.notifications.enums import (
    CLINICAL_CATEGORIES,
    DeliveryChannel,
    NotificationCategory,
    NotificationPriority,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dispatch_service.features.notifications.models import NotificationPreference

# Values a user has before their preference row exists
DEFAULT_PREFERENCES: dict[str, bool] = {
    "email_enabled": True,
    "push_enabled": True,
    "appointments": True,
    "messages": True,
    "prescriptions": True,
    "investigations": True,
    "marketing": False,
}


@dataclass(frozen=True, slots=True)
class ChannelMatrix:
    """Immutable snapshot of which channels and categories a user accepts."""

    channels: Mapping[DeliveryChannel, bool]
    categories: Mapping[NotificationCategory, bool]

    @classmethod
    def from_preference(cls, preference: NotificationPreference) -> ChannelMatrix:
        return cls(
            channels={
                DeliveryChannel.EMAIL: preference.email_enabled,
                DeliveryChannel.PUSH: preference.push_enabled,
            },
            categories={category: category_enabled(preference, category) for category in NotificationCategory},
        )

    def channel_enabled(self, channel: DeliveryChannel) -> bool:
        return self.channels.get(channel, False)

    def category_on(self, category: NotificationCategory) -> bool:
        return self.categories.get(category, False)

    def allows(self, category: NotificationCategory, channel: DeliveryChannel) -> bool:
        """Whether ``category`` notifications may be delivered over ``channel``."""
        return self.channel_enabled(channel) and self.category_on(category)

    def priority_tier_enabled(
        self,
        priority: NotificationPriority,
        category: NotificationCategory | None = None,
    ) -> bool:
        if priority is NotificationPriority.HIGH:
            return True
        if priority is NotificationPriority.LOW:
            return self.category_on(NotificationCategory.MARKETING)
        if category is not None:
            return self.category_on(category)
        return any(self.category_on(c) for c in CLINICAL_CATEGORIES)


def category_enabled(preference: NotificationPreference, category: NotificationCategory) -> bool:
    """Read the preference column backing ``category``."""
    match category:
        case NotificationCategory.APPOINTMENTS:
            return preference.appointments
        case NotificationCategory.MESSAGES:
            return preference.messages
        case NotificationCategory.PRESCRIPTIONS:
            return preference.prescriptions
        case NotificationCategory.INVESTIGATIONS:
            return preference.investigations
        case NotificationCategory.MARKETING:
            return preference.marketing


def email_allowed(
    matrix: ChannelMatrix,
    priority: NotificationPriority,
    category: NotificationCategory | None = None,
) -> bool:
    """Whether a notification of this priority/category should be emailed."""
    if not matrix.channel_enabled(DeliveryChannel.EMAIL):
        return False
    return matrix.priority_tier_enabled(priority, category)


def push_allowed(matrix: ChannelMatrix, category: NotificationCategory | None = None) -> bool:
    """Whether a notification in ``category`` should be pushed."""
    if category is None:
        return matrix.channel_enabled(DeliveryChannel.PUSH)
    return matrix.allows(category, DeliveryChannel.PUSH)

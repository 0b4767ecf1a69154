"""Delivery channel senders.

Email and push are the external channels; the in-app record is written by
the orchestrator itself.
"""

from __future__ import annotations

from dispatch_service.features.notifications.channels.base import (
    EmailSender,
    PushSender,
    SendOutcome,
    SendResult,
)
from dispatch_service.features.notifications.channels.email import EmailComposer, ProviderEmailSender
from dispatch_service.features.notifications.channels.push import (
    FCMPushSender,
    NoopPushSender,
    classify_error,
)

__all__ = [
    "EmailComposer",
    "EmailSender",
    "FCMPushSender",
    "NoopPushSender",
    "ProviderEmailSender",
    "PushSender",
    "SendOutcome",
    "SendResult",
    "classify_error",
]

"""Exceptions raised by the notifications feature."""

from __future__ import annotations

from typing import Any

from dispatch_service.core.database.exceptions import NotFoundError, RepositoryError


class NotificationNotFoundError(NotFoundError):
    """No notification matches the id for the given owner.

    Raised both for missing rows and for rows owned by another user, so a
    caller cannot discover other users' notification ids.
    """

    def __init__(self, notification_id: Any, user_id: str) -> None:
        super().__init__("Notification", {"id": notification_id, "user_id": user_id})
        self.notification_id = notification_id
        self.user_id = user_id


class EmailDeliveryError(Exception):
    """The email transport reported a failed send."""

    def __init__(self, message: str, *, error_code: str | None = None, recipient: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.recipient = recipient


__all__ = [
    "EmailDeliveryError",
    "NotFoundError",
    "NotificationNotFoundError",
    "RepositoryError",
]

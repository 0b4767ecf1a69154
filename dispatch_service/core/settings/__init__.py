"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (database, logging, email, push, notifications),
read from environment variables with a per-domain prefix, optionally from a
``.env`` file, and frozen after validation.

Import settings via cached loaders:
    from dispatch_service.core.settings import get_db_settings
"""

from __future__ import annotations

from .database import DatabaseSettings
from .email import EmailSettings
from .loader import (
    clear_all_caches,
    get_db_settings,
    get_email_settings,
    get_logging_settings,
    get_notification_settings,
    get_push_settings,
)
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .push import PushSettings

__all__ = [
    "DatabaseSettings",
    "EmailSettings",
    "LoggingSettings",
    "NotificationSettings",
    "PushSettings",
    "clear_all_caches",
    "get_db_settings",
    "get_email_settings",
    "get_logging_settings",
    "get_notification_settings",
    "get_push_settings",
]

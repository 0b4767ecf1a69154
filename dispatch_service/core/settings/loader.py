"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from dispatch_service.core.settings import get_notification_settings

    settings = get_notification_settings()  # First call: loads and validates
    settings = get_notification_settings()  # Subsequent calls: cached instance

Testing:
    Construct settings directly (``NotificationSettings(max_attempts=2)``) or
    call ``clear_all_caches()`` after patching the environment.
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .email import EmailSettings
from .logs import LoggingSettings
from .notifications import NotificationSettings
from .push import PushSettings


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_email_settings() -> EmailSettings:
    """Get cached email settings."""
    return EmailSettings()


@lru_cache(maxsize=1)
def get_push_settings() -> PushSettings:
    """Get cached push settings."""
    return PushSettings()


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """Get cached notification dispatch settings."""
    return NotificationSettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance.

    In production, prefer process restarts over cache clearing.
    """
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_email_settings.cache_clear()
    get_push_settings.cache_clear()
    get_notification_settings.cache_clear()

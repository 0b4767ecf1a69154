"""Firebase Admin SDK application setup.

One named ``firebase_admin.App`` per process, built from the service-account
fields in ``PushSettings``. Returns ``None`` when push is disabled or the
credentials are incomplete; callers fall back to a no-op sender.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import firebase_admin
from firebase_admin import credentials

from dispatch_service.infra.logging import get_logger

if TYPE_CHECKING:
    from dispatch_service.core.settings.push import PushSettings

logger = get_logger(__name__)

APP_NAME = "dispatch-service"


def get_firebase_app(settings: PushSettings) -> firebase_admin.App | None:
    """Return the process-wide Firebase app, initializing it on first use.

    Args:
        settings: Push settings carrying the service-account credentials.

    Returns:
        The initialized app, or None when push is disabled or unconfigured.
    """
    if not settings.enabled:
        logger.info("Push notifications disabled by configuration")
        return None

    if not settings.is_configured:
        missing = [
            name
            for name in ("project_id", "client_email", "private_key")
            if not getattr(settings, name)
        ]
        logger.warning(
            "Push credentials incomplete, push delivery disabled",
            extra={"missing": missing},
        )
        return None

    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass

    cred = credentials.Certificate(settings.credentials_info())
    app = firebase_admin.initialize_app(
        cred,
        options={"projectId": settings.project_id},
        name=APP_NAME,
    )
    logger.info("Firebase app initialized", extra={"project_id": settings.project_id})
    return app

"""Push transport (Firebase Cloud Messaging) setup."""

from __future__ import annotations

from dispatch_service.infra.push.client import APP_NAME, get_firebase_app

__all__ = ["APP_NAME", "get_firebase_app"]

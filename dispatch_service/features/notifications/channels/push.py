"""Push channel senders.

``FCMPushSender`` wraps ``firebase_admin.messaging``. The Admin SDK is
synchronous (it blocks on HTTP), so each send runs in a worker thread via
``asyncio.to_thread`` and only the calling task waits on it.

Only two provider answers mean a token will never work again:

- ``messaging/registration-token-not-registered`` (``UnregisteredError``)
- ``messaging/invalid-registration-token`` (``InvalidArgumentError`` about
  the registration token)

Everything else, including other invalid-argument errors, quota and
network failures, is transient.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from dispatch_service.core.delivery import SendResult
from dispatch_service.infra.logging import get_lazy_logger, get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    import firebase_admin

logger = get_logger(__name__)
lazy_logger = get_lazy_logger(__name__)

TOKEN_NOT_REGISTERED = "messaging/registration-token-not-registered"
INVALID_REGISTRATION_TOKEN = "messaging/invalid-registration-token"

# Dry-run target for health checks; the provider rejects it as an invalid token
_HEALTH_CHECK_TOKEN = "test-token"


def classify_error(exc: Exception) -> SendResult:
    """Map a provider exception to a send outcome."""
    if isinstance(exc, messaging.UnregisteredError):
        return SendResult.invalid_token(TOKEN_NOT_REGISTERED)
    if isinstance(exc, firebase_exceptions.InvalidArgumentError) and "registration token" in str(exc).lower():
        return SendResult.invalid_token(INVALID_REGISTRATION_TOKEN)
    if isinstance(exc, firebase_exceptions.FirebaseError):
        return SendResult.transient(f"{exc.code}: {exc}")
    return SendResult.transient(f"{type(exc).__name__}: {exc}")


def _build_notification(title: str, body: str, image_url: str | None) -> messaging.Notification:
    return messaging.Notification(title=title, body=body, image=image_url)


class FCMPushSender:
    """``PushSender`` backed by Firebase Cloud Messaging."""

    def __init__(self, app: firebase_admin.App, *, dry_run: bool = False) -> None:
        self._app = app
        self._dry_run = dry_run

    async def _send(self, message: messaging.Message) -> str:
        return await asyncio.to_thread(messaging.send, message, self._dry_run, self._app)

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        message = messaging.Message(
            token=token,
            notification=_build_notification(title, body, image_url),
            data=dict(data),
        )
        try:
            message_id = await self._send(message)
        except Exception as exc:
            result = classify_error(exc)
            lazy_logger.debug(lambda: f"push.send to {token[:8]}... -> {result.outcome} ({result.reason})")
            return result

        lazy_logger.debug(lambda: f"push.send to {token[:8]}... -> delivered ({message_id})")
        return SendResult.delivered()

    async def send_to_topic(
        self,
        topic: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        message = messaging.Message(
            topic=topic,
            notification=_build_notification(title, body, image_url),
            data=dict(data),
        )
        try:
            await self._send(message)
        except Exception as exc:
            # No device token is involved, so nothing is permanent here
            reason = f"{getattr(exc, 'code', type(exc).__name__)}: {exc}"
            logger.warning("Topic push failed", extra={"topic": topic, "error": reason})
            return SendResult.transient(reason)
        return SendResult.delivered()

    async def health_check(self) -> bool:
        """Dry-run a send to validate credentials.

        A token rejection proves the provider accepted our credentials, so
        only authentication and permission errors count as unhealthy.
        """
        message = messaging.Message(
            token=_HEALTH_CHECK_TOKEN,
            notification=messaging.Notification(title="noop", body="noop"),
        )
        try:
            await asyncio.to_thread(messaging.send, message, True, self._app)
        except (firebase_exceptions.UnauthenticatedError, firebase_exceptions.PermissionDeniedError) as exc:
            logger.warning("Push provider health check failed", extra={"error": str(exc)})
            return False
        except firebase_exceptions.FirebaseError as exc:
            lazy_logger.debug(lambda: f"push health check tolerated provider error: {exc.code}")
        return True


class NoopPushSender:
    """``PushSender`` used when push is disabled or unconfigured.

    Every send reports success without contacting a provider.
    """

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        lazy_logger.debug(lambda: f"push disabled, skipping send of {title!r}")
        return SendResult.delivered()

    async def send_to_topic(
        self,
        topic: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        lazy_logger.debug(lambda: f"push disabled, skipping topic {topic!r}")
        return SendResult.delivered()

    async def health_check(self) -> bool:
        return True

"""Notification orchestrator: in-app record, email and push in one call.

``notify`` persists the in-app notification, then fans it out to the
external channels the user's preferences allow. Channel failures are
isolated: they are logged, audited and reported in the returned result but
never raised, so the business action that triggered the notification always
succeeds once its row is stored.

Push delivery runs one unit of work per device token, concurrently under a
semaphore and bounded by a deadline that grows with the token count. Each
unit retries through the ``RetryExecutor``, touches ``last_used_at``,
revokes the token on a permanent rejection and audits its final outcome.
Every bookkeeping write uses its own short session.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from math import ceil
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import ValidationError

from dispatch_service.core.database import utcnow
from dispatch_service.core.delivery import SendOutcome
from dispatch_service.core.services import BaseService
from dispatch_service.core.settings import (
    get_email_settings,
    get_notification_settings,
    get_push_settings,
)
from dispatch_service.features.notifications.audit import DeliveryAuditor
from dispatch_service.features.notifications.channels import (
    EmailComposer,
    FCMPushSender,
    NoopPushSender,
    ProviderEmailSender,
)
from dispatch_service.features.notifications.enums import (
    DeliveryChannel,
    NotificationCategory,
    NotificationPriority,
)
from dispatch_service.features.notifications.exceptions import (
    EmailDeliveryError,
    NotificationNotFoundError,
)
from dispatch_service.features.notifications.metrics import (
    bookkeeping_failures_total,
    device_tokens_revoked_total,
    notification_cleanup_total,
    notification_created_total,
    notification_delivered_total,
    notification_dispatch_duration_seconds,
    notification_read_total,
    push_attempts_per_token,
    push_dispatch_timeouts_total,
)
from dispatch_service.features.notifications.models import Notification
from dispatch_service.features.notifications.preferences import (
    DEFAULT_PREFERENCES,
    ChannelMatrix,
    email_allowed,
    push_allowed,
)
from dispatch_service.features.notifications.registry import DeviceRegistry
from dispatch_service.features.notifications.repository import (
    NotificationRepository,
    PreferenceRepository,
)
from dispatch_service.features.notifications.schemas import (
    DispatchSummary,
    EmailDispatch,
    EmailStatus,
    NotifyResult,
    PreferencesRead,
    PreferencesUpdate,
    PushPayload,
)
from dispatch_service.infra.email import create_email_provider
from dispatch_service.infra.push import get_firebase_app
from dispatch_service.utils.retry import RetryExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from dispatch_service.core.settings import EmailSettings, NotificationSettings, PushSettings
    from dispatch_service.features.notifications.channels import EmailSender, PushSender
    from dispatch_service.features.notifications.models import DeviceToken
    from dispatch_service.features.notifications.schemas import DeliveryStats
    from dispatch_service.infra.database import Database
    from dispatch_service.infra.logging import ContextBoundLogger


@runtime_checkable
class RecipientDirectory(Protocol):
    """Resolves a user's email address. Supplied by the host system."""

    async def get_email(self, user_id: str) -> str | None:
        ...


class StaticRecipientDirectory:
    """In-memory ``RecipientDirectory`` backed by a mapping."""

    def __init__(self, emails: Mapping[str, str] | None = None) -> None:
        self._emails = dict(emails or {})

    async def get_email(self, user_id: str) -> str | None:
        return self._emails.get(user_id)


def _unique_tokens(tokens: Sequence[DeviceToken]) -> list[DeviceToken]:
    """Keep the first row per physical token value."""
    seen: dict[str, DeviceToken] = {}
    for token in tokens:
        seen.setdefault(token.token, token)
    return list(seen.values())


class NotificationOrchestrator(BaseService):
    """Creates notifications and delivers them across channels.

    All collaborators are passed in; nothing is looked up globally.

    Example:
        orchestrator = build_orchestrator(database, directory)
        result = await orchestrator.notify(
            user_id,
            "prescription",
            "New prescription",
            "Dr. Lee issued a new prescription.",
            NotificationPriority.HIGH,
            action_url="/prescriptions/42",
            category=NotificationCategory.PRESCRIPTIONS,
        )
        result.push.sent  # tokens that accepted the push
    """

    def __init__(
        self,
        database: Database,
        email_sender: EmailSender | None,
        push_sender: PushSender,
        executor: RetryExecutor,
        directory: RecipientDirectory,
        settings: NotificationSettings,
        *,
        composer: EmailComposer | None = None,
        registry: DeviceRegistry | None = None,
        auditor: DeliveryAuditor | None = None,
        logger: ContextBoundLogger | None = None,
    ) -> None:
        super().__init__(logger)
        self._db = database
        self._email = email_sender
        self._push = push_sender
        self._executor = executor
        self._directory = directory
        self._settings = settings
        self._composer = composer or EmailComposer.from_settings(get_email_settings())
        self._registry = registry or DeviceRegistry()
        self._auditor = auditor or DeliveryAuditor(
            database,
            stats_window=timedelta(hours=settings.stats_window_hours),
        )
        self._notifications = NotificationRepository()
        self._preferences = PreferenceRepository()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def notify(
        self,
        user_id: str,
        kind: str,
        title: str,
        body: str,
        priority: NotificationPriority | str = NotificationPriority.MEDIUM,
        action_url: str | None = None,
        *,
        category: NotificationCategory | str | None = None,
        data: Mapping[str, Any] | None = None,
        image_url: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> NotifyResult:
        """Create a notification and deliver it over the allowed channels.

        Storing the row and loading preferences are the only steps whose
        errors propagate. Email and push failures end up in the result.

        Args:
            user_id: Recipient
            kind: info, success, warning, alert or a business kind
            title: Notification title
            body: Notification message
            priority: high, medium or low
            action_url: Link for the call to action; also sent to devices as ``url``
            category: Preference category gating delivery, if any
            data: Extra key/value data for the push payload
            image_url: Image shown with the push notification
            metadata: Caller context stored with each audit entry

        Returns:
            NotifyResult with the stored row and per-channel outcomes
        """
        started = time.perf_counter()
        priority = NotificationPriority(priority)
        category = NotificationCategory(category) if category is not None else None

        async with self._db.session() as session:
            notification = await self._notifications.create(
                session,
                Notification(
                    user_id=user_id,
                    kind=str(kind),
                    title=title,
                    body=body,
                    priority=priority,
                    read=False,
                    action_url=action_url,
                ),
            )
        notification_created_total.labels(kind=str(kind), priority=str(priority)).inc()

        async with self._db.session() as session:
            preference = await self._preferences.get_or_create(session, user_id)
            matrix = ChannelMatrix.from_preference(preference)

        log = self.logger.bind(user_id=user_id, notification_id=str(notification.id))
        context = {"title": title, "notification_id": str(notification.id), **(metadata or {})}

        email = await self._dispatch_email(notification, matrix, category, context, log)

        if push_allowed(matrix, category):
            push_data = {"url": action_url} if action_url else {}
            push_data.update(data or {})
            try:
                payload = PushPayload(title=title, body=body, data=push_data, image_url=image_url)
            except ValidationError as exc:
                log.warning("Push payload rejected, push not sent", extra={"error": str(exc)})
                push = DispatchSummary.skipped("invalid_payload")
                notification_delivered_total.labels(channel=DeliveryChannel.PUSH.value, outcome="skipped").inc()
            else:
                try:
                    push = await self._push_to_users([user_id], payload, context, log)
                except Exception:
                    log.exception("Push dispatch failed before any send")
                    push = DispatchSummary.skipped("token_lookup_failed")
        else:
            push = DispatchSummary.skipped("disabled_by_preferences")
            notification_delivered_total.labels(channel=DeliveryChannel.PUSH.value, outcome="skipped").inc()

        notification_dispatch_duration_seconds.labels(operation="notify").observe(time.perf_counter() - started)
        log.info(
            "Notification dispatched",
            extra={
                "kind": str(kind),
                "priority": str(priority),
                "email": str(email.status),
                "push_targeted": push.targeted,
                "push_sent": push.sent,
                "push_invalid": push.invalid,
                "push_failed": push.failed,
            },
        )
        return NotifyResult(notification=notification, email=email, push=push)

    async def notify_many(self, user_ids: Sequence[str], payload: PushPayload) -> DispatchSummary:
        """Push one payload to every enabled device of ``user_ids``.

        Tokens shared between users are sent to once. No in-app rows are
        created.

        Returns:
            DispatchSummary with targeted/sent/invalid/failed token counts
        """
        if not user_ids:
            return DispatchSummary()

        started = time.perf_counter()
        log = self.logger.bind(recipients=len(user_ids))
        summary = await self._push_to_users(user_ids, payload, {"title": payload.title, "broadcast": True}, log)
        notification_dispatch_duration_seconds.labels(operation="notify_many").observe(time.perf_counter() - started)
        log.info(
            "Broadcast dispatched",
            extra={
                "targeted": summary.targeted,
                "sent": summary.sent,
                "invalid": summary.invalid,
                "failed": summary.failed,
            },
        )
        return summary

    async def send_topic(self, topic: str, payload: PushPayload) -> bool:
        """Broadcast to a provider topic. Returns whether it was accepted."""
        started = time.perf_counter()
        execution = await self._executor.execute(
            lambda: self._push.send_to_topic(topic, payload.title, payload.body, payload.data, payload.image_url),
            operation="push.topic",
        )
        notification_dispatch_duration_seconds.labels(operation="send_topic").observe(time.perf_counter() - started)
        self.logger.info(
            "Topic notification sent" if execution.result.is_delivered else "Topic notification failed",
            extra={"topic": topic, "attempts": execution.attempts, "reason": execution.result.reason},
        )
        return execution.result.is_delivered

    async def push_health(self) -> bool:
        """Check the push provider credentials without delivering anything."""
        healthy = await self._push.health_check()
        self.logger.info("Push provider health checked", extra={"healthy": healthy})
        return healthy

    async def _dispatch_email(
        self,
        notification: Notification,
        matrix: ChannelMatrix,
        category: NotificationCategory | None,
        context: Mapping[str, Any],
        log: ContextBoundLogger,
    ) -> EmailDispatch:
        if self._email is None:
            return self._email_skipped("email_disabled")
        if not email_allowed(matrix, notification.priority, category):
            return self._email_skipped("disabled_by_preferences")

        try:
            address = await self._directory.get_email(notification.user_id)
        except Exception as exc:
            log.warning("Recipient lookup failed, email not sent", extra={"error": str(exc)})
            notification_delivered_total.labels(channel=DeliveryChannel.EMAIL.value, outcome="failed").inc()
            return EmailDispatch(status=EmailStatus.FAILED, reason="recipient_lookup_failed")
        if not address:
            return self._email_skipped("no_email_address")

        subject = self._composer.subject(notification.title)
        html = self._composer.render(notification.title, notification.body, notification.action_url)
        try:
            await self._email.send(address, subject, html)
        except EmailDeliveryError as exc:
            reason = exc.error_code or str(exc)
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        else:
            await self._auditor.record(notification.user_id, DeliveryChannel.EMAIL, SendOutcome.DELIVERED, context=context)
            notification_delivered_total.labels(channel=DeliveryChannel.EMAIL.value, outcome="delivered").inc()
            return EmailDispatch(status=EmailStatus.SENT)

        log.warning("Email notification failed", extra={"error": reason})
        await self._auditor.record(
            notification.user_id,
            DeliveryChannel.EMAIL,
            SendOutcome.TRANSIENT_FAILURE,
            error_code=reason,
            context=context,
        )
        notification_delivered_total.labels(channel=DeliveryChannel.EMAIL.value, outcome="failed").inc()
        return EmailDispatch(status=EmailStatus.FAILED, reason=reason)

    @staticmethod
    def _email_skipped(reason: str) -> EmailDispatch:
        notification_delivered_total.labels(channel=DeliveryChannel.EMAIL.value, outcome="skipped").inc()
        return EmailDispatch(status=EmailStatus.SKIPPED, reason=reason)

    async def _push_to_users(
        self,
        user_ids: Sequence[str],
        payload: PushPayload,
        context: Mapping[str, Any],
        log: ContextBoundLogger,
    ) -> DispatchSummary:
        async with self._db.session() as session:
            tokens = await self._registry.list_enabled_tokens_for_users(session, user_ids)
        tokens = _unique_tokens(tokens)
        if not tokens:
            self._lazy.debug(lambda: f"No enabled device tokens for {len(user_ids)} user(s)")
            return DispatchSummary.skipped("no_tokens")
        return await self._fan_out(tokens, payload, context, log)

    async def _fan_out(
        self,
        tokens: Sequence[DeviceToken],
        payload: PushPayload,
        context: Mapping[str, Any],
        log: ContextBoundLogger,
    ) -> DispatchSummary:
        """Deliver to every token concurrently, bounded by the pool size and deadline.

        The deadline is ``dispatch_timeout_seconds`` per wave of
        ``max_concurrency`` tokens, so it grows with the broadcast size.
        Units still running at the deadline are cancelled, audited as
        ``dispatch_timeout`` and count as failed.
        """
        max_concurrency = self._settings.max_concurrency
        timeout = self._settings.dispatch_timeout_seconds * ceil(len(tokens) / max_concurrency)
        semaphore = asyncio.Semaphore(max_concurrency)
        outcomes: dict[UUID, SendOutcome] = {}

        async def unit(token: DeviceToken) -> None:
            async with semaphore:
                outcomes[token.id] = await self._deliver_to_token(token, payload, context)

        gathered = asyncio.gather(*(unit(token) for token in tokens), return_exceptions=True)
        try:
            results = await asyncio.wait_for(gathered, timeout=timeout)
        except TimeoutError:
            unfinished = [token for token in tokens if token.id not in outcomes]
            push_dispatch_timeouts_total.inc()
            log.warning(
                "Push dispatch deadline reached, cancelling unfinished sends",
                extra={"timeout_seconds": timeout, "finished": len(outcomes), "targeted": len(tokens)},
            )
            for token in unfinished:
                await self._auditor.record(
                    token.user_id,
                    DeliveryChannel.PUSH,
                    SendOutcome.TRANSIENT_FAILURE,
                    token_id=token.id,
                    error_code="dispatch_timeout",
                    context=context,
                )
                notification_delivered_total.labels(channel=DeliveryChannel.PUSH.value, outcome="timeout").inc()
        else:
            for error in (r for r in results if isinstance(r, BaseException)):
                log.error("Push unit failed unexpectedly", extra={"error": str(error)})

        sent = sum(1 for outcome in outcomes.values() if outcome is SendOutcome.DELIVERED)
        invalid = sum(1 for outcome in outcomes.values() if outcome is SendOutcome.INVALID_TOKEN)
        return DispatchSummary(
            targeted=len(tokens),
            sent=sent,
            invalid=invalid,
            failed=len(tokens) - sent - invalid,
        )

    async def _deliver_to_token(
        self,
        token: DeviceToken,
        payload: PushPayload,
        context: Mapping[str, Any],
    ) -> SendOutcome:
        execution = await self._executor.execute(
            lambda: self._push.send(token.token, payload.title, payload.body, payload.data, payload.image_url),
        )
        result = execution.result
        push_attempts_per_token.observe(execution.attempts)

        await self._bookkeep("touch", self._registry.touch, token.id)
        if result.is_invalid and await self._bookkeep("revoke", self._registry.revoke, token.token):
            device_tokens_revoked_total.inc()
        await self._auditor.record(
            token.user_id,
            DeliveryChannel.PUSH,
            result.outcome,
            token_id=token.id,
            error_code=None if result.is_delivered else result.reason,
            context=context,
        )
        notification_delivered_total.labels(channel=DeliveryChannel.PUSH.value, outcome=result.outcome.value).inc()
        return result.outcome

    async def _bookkeep(self, operation: str, write: Callable[[Any, Any], Awaitable[None]], arg: Any) -> bool:
        """Run one registry write in its own session. Failures are logged, not raised."""
        try:
            async with self._db.session() as session:
                await write(session, arg)
        except Exception as exc:
            bookkeeping_failures_total.labels(operation=operation).inc()
            self.logger.warning(
                f"Device token {operation} failed",
                extra={"operation": operation, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def register_device(
        self,
        user_id: str,
        token: str,
        device_type: str,
        device_info: Mapping[str, Any] | None = None,
    ) -> DeviceToken:
        """Register a push token and make sure the user has a preference row."""
        async with self._db.session() as session:
            device = await self._registry.register(session, user_id, token, device_type, device_info)
            await self._preferences.get_or_create(session, user_id)
        return device

    async def unregister_device(self, token: str, user_id: str | None = None) -> int:
        async with self._db.session() as session:
            return await self._registry.unregister(session, token, user_id)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def mark_read(self, notification_id: UUID, user_id: str, read: bool = True) -> None:
        """Set the read flag of a notification owned by ``user_id``.

        Raises:
            NotificationNotFoundError: No notification with this id belongs to the user
        """
        async with self._db.session() as session:
            matched = await self._notifications.set_read(session, notification_id, user_id, read=read)
        if not matched:
            raise NotificationNotFoundError(notification_id, user_id)
        if read:
            notification_read_total.labels(mode="single").inc()

    async def mark_all_read(self, user_id: str) -> int:
        async with self._db.session() as session:
            changed = await self._notifications.mark_all_read(session, user_id)
        notification_read_total.labels(mode="bulk").inc(changed)
        return changed

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> Sequence[Notification]:
        """Newest-first notifications, at most ``page_size`` of them."""
        page_size = self._settings.page_size
        limit = page_size if limit is None else max(1, min(limit, page_size))
        async with self._db.session() as session:
            return await self._notifications.list_for_user(session, user_id, unread_only=unread_only, limit=limit)

    async def cleanup_old(self, days_to_keep: int | None = None) -> int:
        """Delete read notifications older than ``days_to_keep`` days.

        Returns:
            Number of notifications deleted
        """
        days = self._settings.retention_days if days_to_keep is None else days_to_keep
        if days < 0:
            msg = f"days_to_keep must be >= 0, got {days}"
            raise ValueError(msg)

        cutoff = utcnow() - timedelta(days=days)
        async with self._db.session() as session:
            deleted = await self._notifications.delete_read_before(session, cutoff)
        notification_cleanup_total.inc(deleted)
        self.logger.info("Old notifications cleaned up", extra={"days_to_keep": days, "deleted": deleted})
        return deleted

    # ------------------------------------------------------------------
    # Preferences and stats
    # ------------------------------------------------------------------

    async def get_preferences(self, user_id: str) -> PreferencesRead:
        """Current preferences; defaults when the user has no row yet."""
        async with self._db.session() as session:
            preference = await self._preferences.get_for_user(session, user_id)
        if preference is None:
            return PreferencesRead(user_id=user_id, **DEFAULT_PREFERENCES)
        return PreferencesRead.model_validate(preference)

    async def update_preferences(
        self,
        user_id: str,
        update: PreferencesUpdate | Mapping[str, bool],
    ) -> PreferencesRead:
        """Apply a partial update, creating the row first if needed."""
        if not isinstance(update, PreferencesUpdate):
            update = PreferencesUpdate.model_validate(update)
        changes = update.model_dump(exclude_none=True)

        async with self._db.session() as session:
            preference = await self._preferences.get_or_create(session, user_id)
            for field, value in changes.items():
                setattr(preference, field, value)
            await session.flush()
            result = PreferencesRead.model_validate(preference)

        self.logger.info("Notification preferences updated", extra={"user_id": user_id, "fields": sorted(changes)})
        return result

    async def delivery_stats(
        self,
        channel: DeliveryChannel = DeliveryChannel.PUSH,
        since: datetime | None = None,
        *,
        hours: float | None = None,
    ) -> DeliveryStats:
        """Audit-based delivery counts; ``hours`` overrides the default window."""
        if since is None and hours is not None:
            since = utcnow() - timedelta(hours=hours)
        async with self._db.session() as session:
            return await self._auditor.delivery_stats(session, channel, since)


def build_orchestrator(
    database: Database,
    directory: RecipientDirectory,
    *,
    notification_settings: NotificationSettings | None = None,
    email_settings: EmailSettings | None = None,
    push_settings: PushSettings | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> NotificationOrchestrator:
    """Wire an orchestrator from settings.

    Email goes through the configured provider unless disabled. Push uses
    Firebase when credentials are configured and a no-op sender otherwise.
    """
    notification_settings = notification_settings or get_notification_settings()
    email_settings = email_settings or get_email_settings()
    push_settings = push_settings or get_push_settings()

    email_sender = (
        ProviderEmailSender(create_email_provider(email_settings), email_settings) if email_settings.enabled else None
    )
    app = get_firebase_app(push_settings)
    push_sender = FCMPushSender(app, dry_run=push_settings.dry_run) if app is not None else NoopPushSender()

    return NotificationOrchestrator(
        database,
        email_sender,
        push_sender,
        RetryExecutor.from_settings(notification_settings, sleep=sleep),
        directory,
        notification_settings,
        composer=EmailComposer.from_settings(email_settings),
    )

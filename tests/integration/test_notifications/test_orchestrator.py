"""Integration tests for NotificationOrchestrator.

Runs against a temporary SQLite database with fake channel senders; see
``tests/conftest.py``. Backoff sleeps are recorded, not slept, except in the
concurrency tests, which need real waits to observe overlapping units.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select, update

from dispatch_service.core.database import utcnow
from dispatch_service.core.delivery import SendResult
from dispatch_service.features.notifications.enums import (
    DeliveryChannel,
    NotificationCategory,
    NotificationPriority,
)
from dispatch_service.features.notifications.exceptions import NotificationNotFoundError
from dispatch_service.features.notifications.models import DeliveryAuditEntry, DeviceToken, Notification
from dispatch_service.features.notifications.registry import DeviceRegistry
from dispatch_service.features.notifications.repository import AuditRepository
from dispatch_service.features.notifications.schemas import (
    DispatchSummary,
    EmailStatus,
    PreferencesUpdate,
    PushPayload,
)
from dispatch_service.features.notifications.service import NotificationOrchestrator, StaticRecipientDirectory
from dispatch_service.utils.retry import RetryExecutor


async def count_rows(database, model, *criteria) -> int:
    async with database.session() as session:
        stmt = select(func.count()).select_from(model).where(*criteria)
        return (await session.execute(stmt)).scalar_one()


async def audit_entries(database, user_id: str, channel: DeliveryChannel | None = None):
    async with database.session() as session:
        return await AuditRepository().list_for_user(session, user_id, channel=channel)


async def age_notification(database, notification_id, days: int) -> None:
    async with database.session() as session:
        await session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(created_at=utcnow() - timedelta(days=days))
        )


# =============================================================================
# notify
# =============================================================================


@pytest.mark.integration
class TestNotify:
    """Creating and dispatching a single notification."""

    @pytest.mark.asyncio
    async def test_creates_row_and_delivers_everywhere(self, database, orchestrator, email_sender, push_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        result = await orchestrator.notify(
            "patient-1",
            "prescription",
            "New prescription",
            "Dr. Lee issued a new prescription.",
            NotificationPriority.HIGH,
            action_url="/prescriptions/42",
            category=NotificationCategory.PRESCRIPTIONS,
            data={"prescription_id": 42},
            metadata={"source": "pharmacy"},
        )

        notification = result.notification
        assert notification.user_id == "patient-1"
        assert notification.kind == "prescription"
        assert notification.read is False
        assert notification.priority is NotificationPriority.HIGH

        assert result.email.status is EmailStatus.SENT
        assert email_sender.sent[0]["to"] == "patient1@example.com"
        assert email_sender.sent[0]["subject"] == "Quitline Alert: New prescription"
        assert 'href="/prescriptions/42"' in email_sender.sent[0]["html"]

        assert result.push == DispatchSummary(targeted=1, sent=1, invalid=0, failed=0)
        payload = push_sender.payloads[0]
        assert payload["title"] == "New prescription"
        assert payload["data"] == {"url": "/prescriptions/42", "prescription_id": "42"}

        push_audit = await audit_entries(database, "patient-1", DeliveryChannel.PUSH)
        email_audit = await audit_entries(database, "patient-1", DeliveryChannel.EMAIL)
        assert len(push_audit) == 1
        assert push_audit[0].success is True
        assert push_audit[0].context["notification_id"] == str(notification.id)
        assert push_audit[0].context["source"] == "pharmacy"
        assert len(email_audit) == 1
        assert email_audit[0].success is True

    @pytest.mark.asyncio
    async def test_invalid_token_is_tried_once_and_revoked(
        self, database, orchestrator, push_sender, recording_sleep
    ):
        await orchestrator.register_device("patient-1", "stale-token", "android")
        push_sender.script("stale-token", SendResult.invalid_token("messaging/registration-token-not-registered"))

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert push_sender.attempts_for("stale-token") == 1
        assert recording_sleep.delays == []
        assert result.push == DispatchSummary(targeted=1, sent=0, invalid=1, failed=0)
        assert await count_rows(database, DeviceToken) == 0

        (entry,) = await audit_entries(database, "patient-1", DeliveryChannel.PUSH)
        assert entry.invalid is True
        assert entry.success is False
        assert entry.error_code == "messaging/registration-token-not-registered"

    @pytest.mark.asyncio
    async def test_persistent_transient_failure_exhausts_attempts(
        self, database, orchestrator, push_sender, recording_sleep
    ):
        await orchestrator.register_device("patient-1", "flaky-token", "ios")
        push_sender.script("flaky-token", *[SendResult.transient("UNAVAILABLE: try later")] * 3)

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert push_sender.attempts_for("flaky-token") == 3
        assert recording_sleep.delays == [0.5, 1.0]
        assert result.push == DispatchSummary(targeted=1, sent=0, invalid=0, failed=1)
        # Transient failures never remove the token
        assert await count_rows(database, DeviceToken) == 1

        (entry,) = await audit_entries(database, "patient-1", DeliveryChannel.PUSH)
        assert entry.success is False
        assert entry.invalid is False
        assert entry.error_code == "UNAVAILABLE: try later"

    @pytest.mark.asyncio
    async def test_recovers_on_retry(self, orchestrator, push_sender, recording_sleep):
        await orchestrator.register_device("patient-1", "token-aaa", "web")
        push_sender.script("token-aaa", SendResult.transient("QUOTA_EXCEEDED"))

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert push_sender.attempts_for("token-aaa") == 2
        assert recording_sleep.delays == [0.5]
        assert result.push.sent == 1

    @pytest.mark.asyncio
    async def test_mixed_tokens_are_counted_per_token(self, database, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-good", "web")
        await orchestrator.register_device("patient-1", "token-bad", "android")
        push_sender.script("token-bad", *[SendResult.transient("INTERNAL")] * 3)

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push == DispatchSummary(targeted=2, sent=1, invalid=0, failed=1)
        push_audit = await audit_entries(database, "patient-1", DeliveryChannel.PUSH)
        assert len(push_audit) == 2
        assert sorted(entry.success for entry in push_audit) == [False, True]

    @pytest.mark.asyncio
    async def test_exactly_one_row_even_when_every_channel_fails(
        self, database, orchestrator, email_sender, push_sender
    ):
        await orchestrator.register_device("patient-1", "token-aaa", "web")
        email_sender.fail = "SMTP_ERROR"
        push_sender.script("token-aaa", *[RuntimeError("connection reset")] * 3)

        result = await orchestrator.notify("patient-1", "alert", "Alert", "Body", "high")

        assert result.email.status is EmailStatus.FAILED
        assert result.email.reason == "SMTP_ERROR"
        assert result.push.failed == 1
        assert await count_rows(database, Notification) == 1

        (email_entry,) = await audit_entries(database, "patient-1", DeliveryChannel.EMAIL)
        assert email_entry.success is False
        assert email_entry.error_code == "SMTP_ERROR"

    @pytest.mark.asyncio
    async def test_touch_updates_last_used_at_for_every_attempted_token(self, database, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")
        push_sender.script("token-aaa", *[SendResult.transient()] * 3)
        async with database.session() as session:
            await session.execute(update(DeviceToken).values(last_used_at=utcnow() - timedelta(days=10)))
            before = (await session.execute(select(DeviceToken.last_used_at))).scalar_one()

        await orchestrator.notify("patient-1", "info", "Hello", "World")

        async with database.session() as session:
            after = (await session.execute(select(DeviceToken.last_used_at))).scalar_one()
        assert after > before

    @pytest.mark.asyncio
    async def test_bookkeeping_failure_does_not_change_outcome(
        self,
        database,
        email_sender,
        push_sender,
        directory,
        composer,
        notification_settings,
        recording_sleep,
    ):
        class BrokenTouchRegistry(DeviceRegistry):
            async def touch(self, session, token_id):
                raise RuntimeError("database is locked")

        orchestrator = NotificationOrchestrator(
            database,
            email_sender,
            push_sender,
            RetryExecutor.from_settings(notification_settings, sleep=recording_sleep),
            directory,
            notification_settings,
            composer=composer,
            registry=BrokenTouchRegistry(),
        )
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push.sent == 1
        assert len(await audit_entries(database, "patient-1", DeliveryChannel.PUSH)) == 1

    @pytest.mark.asyncio
    async def test_no_tokens_skips_push(self, orchestrator, push_sender):
        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push.skipped_reason == "no_tokens"
        assert result.push.targeted == 0
        assert push_sender.calls == []

    @pytest.mark.asyncio
    async def test_unknown_priority_rejected_before_anything_is_stored(self, database, orchestrator):
        with pytest.raises(ValueError):
            await orchestrator.notify("patient-1", "info", "Hello", "World", "urgent")

        assert await count_rows(database, Notification) == 0

    @pytest.mark.asyncio
    async def test_deadline_counts_unfinished_tokens_as_failed(self, database, make_orchestrator, push_sender):
        orchestrator = make_orchestrator(dispatch_timeout_seconds=0.5)
        await orchestrator.register_device("patient-1", "token-fast", "web")
        await orchestrator.register_device("patient-1", "token-hung", "web")
        push_sender.hang.add("token-hung")

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push == DispatchSummary(targeted=2, sent=1, invalid=0, failed=1)
        entries = await audit_entries(database, "patient-1", DeliveryChannel.PUSH)
        assert sorted((entry.success, entry.error_code) for entry in entries) == [
            (False, "dispatch_timeout"),
            (True, None),
        ]

    @pytest.mark.asyncio
    async def test_relative_image_url_is_passed_through(self, database, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        result = await orchestrator.notify(
            "patient-1", "prescription", "New prescription", "Ready", "high", image_url="/icons/rx.png"
        )

        assert await count_rows(database, Notification) == 1
        assert result.push.sent == 1
        assert push_sender.payloads[0]["image_url"] == "/icons/rx.png"

    @pytest.mark.asyncio
    async def test_unsendable_push_payload_still_stores_row(self, database, orchestrator, push_sender, email_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        result = await orchestrator.notify("patient-1", "info", "Heads up", "", "high")

        assert await count_rows(database, Notification) == 1
        assert result.notification.body == ""
        assert result.push.skipped_reason == "invalid_payload"
        assert push_sender.calls == []
        assert result.email.status is EmailStatus.SENT

    @pytest.mark.asyncio
    async def test_invalid_token_is_touched_before_revoke(
        self,
        database,
        email_sender,
        push_sender,
        directory,
        composer,
        notification_settings,
        recording_sleep,
    ):
        calls: list[str] = []

        class RecordingRegistry(DeviceRegistry):
            async def touch(self, session, token_id):
                calls.append("touch")
                await super().touch(session, token_id)

            async def revoke(self, session, token):
                calls.append("revoke")
                await super().revoke(session, token)

        orchestrator = NotificationOrchestrator(
            database,
            email_sender,
            push_sender,
            RetryExecutor.from_settings(notification_settings, sleep=recording_sleep),
            directory,
            notification_settings,
            composer=composer,
            registry=RecordingRegistry(),
        )
        await orchestrator.register_device("patient-1", "stale-token", "android")
        push_sender.script("stale-token", SendResult.invalid_token("messaging/registration-token-not-registered"))

        await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert calls == ["touch", "revoke"]
        assert await count_rows(database, DeviceToken) == 0


@pytest.mark.integration
class TestNotifyPreferences:
    """Channel eligibility applied by notify."""

    @pytest.mark.asyncio
    async def test_low_priority_email_skipped_without_marketing(self, orchestrator, email_sender):
        result = await orchestrator.notify("patient-1", "info", "Offer", "Body", NotificationPriority.LOW)

        assert result.email.status is EmailStatus.SKIPPED
        assert result.email.reason == "disabled_by_preferences"
        assert email_sender.sent == []

    @pytest.mark.asyncio
    async def test_low_priority_email_sent_with_marketing(self, orchestrator, email_sender):
        await orchestrator.update_preferences("patient-1", {"marketing": True})

        result = await orchestrator.notify("patient-1", "info", "Offer", "Body", NotificationPriority.LOW)

        assert result.email.status is EmailStatus.SENT

    @pytest.mark.asyncio
    async def test_medium_priority_follows_category(self, orchestrator, email_sender):
        await orchestrator.update_preferences("patient-1", PreferencesUpdate(appointments=False))

        result = await orchestrator.notify(
            "patient-1", "appointment", "Reminder", "Tomorrow 9:00", category=NotificationCategory.APPOINTMENTS
        )

        assert result.email.status is EmailStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_push_disabled_by_preferences(self, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")
        await orchestrator.update_preferences("patient-1", {"push_enabled": False})

        result = await orchestrator.notify("patient-1", "info", "Hello", "World", "high")

        assert result.push.skipped_reason == "disabled_by_preferences"
        assert push_sender.calls == []

    @pytest.mark.asyncio
    async def test_push_category_switch(self, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        result = await orchestrator.notify(
            "patient-1", "promo", "Offer", "Body", "low", category=NotificationCategory.MARKETING
        )

        assert result.push.skipped_reason == "disabled_by_preferences"

    @pytest.mark.asyncio
    async def test_missing_email_address(self, orchestrator):
        result = await orchestrator.notify("patient-9", "info", "Hello", "World", "high")

        assert result.email.status is EmailStatus.SKIPPED
        assert result.email.reason == "no_email_address"

    @pytest.mark.asyncio
    async def test_email_channel_not_configured(
        self, database, push_sender, directory, composer, notification_settings
    ):
        orchestrator = NotificationOrchestrator(
            database,
            None,
            push_sender,
            RetryExecutor.from_settings(notification_settings),
            directory,
            notification_settings,
            composer=composer,
        )

        result = await orchestrator.notify("patient-1", "info", "Hello", "World", "high")

        assert result.email.reason == "email_disabled"

    @pytest.mark.asyncio
    async def test_directory_failure_is_reported(
        self, database, email_sender, push_sender, composer, notification_settings
    ):
        class BrokenDirectory(StaticRecipientDirectory):
            async def get_email(self, user_id):
                raise ConnectionError("directory down")

        orchestrator = NotificationOrchestrator(
            database,
            email_sender,
            push_sender,
            RetryExecutor.from_settings(notification_settings),
            BrokenDirectory(),
            notification_settings,
            composer=composer,
        )

        result = await orchestrator.notify("patient-1", "info", "Hello", "World", "high")

        assert result.email.status is EmailStatus.FAILED
        assert result.email.reason == "recipient_lookup_failed"
        assert await count_rows(database, Notification) == 1


# =============================================================================
# Broadcasts
# =============================================================================


@pytest.mark.integration
class TestBroadcast:
    """notify_many and send_topic."""

    @pytest.mark.asyncio
    async def test_notify_many_sends_each_token_once(self, database, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-1", "web")
        await orchestrator.register_device("patient-2", "token-2", "ios")
        payload = PushPayload(title="Clinic closed", body="Closed on Monday", data={"kind": "closure"})

        summary = await orchestrator.notify_many(["patient-1", "patient-2", "patient-1"], payload)

        assert summary == DispatchSummary(targeted=2, sent=2, invalid=0, failed=0)
        assert sorted(push_sender.calls) == ["token-1", "token-2"]
        assert await count_rows(database, Notification) == 0

    @pytest.mark.asyncio
    async def test_notify_many_empty_input(self, orchestrator, push_sender):
        summary = await orchestrator.notify_many([], PushPayload(title="t", body="b"))

        assert summary == DispatchSummary()
        assert push_sender.calls == []

    @pytest.mark.asyncio
    async def test_notify_many_revokes_invalid_tokens(self, database, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-1", "web")
        await orchestrator.register_device("patient-2", "token-2", "web")
        push_sender.script("token-2", SendResult.invalid_token("messaging/invalid-registration-token"))

        summary = await orchestrator.notify_many(["patient-1", "patient-2"], PushPayload(title="t", body="b"))

        assert summary == DispatchSummary(targeted=2, sent=1, invalid=1, failed=0)
        assert await count_rows(database, DeviceToken, DeviceToken.token == "token-2") == 0

    @pytest.mark.asyncio
    async def test_send_topic(self, orchestrator, push_sender):
        accepted = await orchestrator.send_topic("all", PushPayload(title="Maintenance", body="Tonight"))

        assert accepted is True
        assert push_sender.topic_calls == ["all"]

    @pytest.mark.asyncio
    async def test_send_topic_retries_then_gives_up(self, orchestrator, push_sender, recording_sleep):
        push_sender.topic_results.extend([SendResult.transient("UNAVAILABLE")] * 3)

        accepted = await orchestrator.send_topic("all", PushPayload(title="Maintenance", body="Tonight"))

        assert accepted is False
        assert push_sender.topic_calls == ["all"] * 3
        assert recording_sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_push_health_reports_sender_state(self, orchestrator, push_sender):
        assert await orchestrator.push_health() is True

        push_sender.healthy = False

        assert await orchestrator.push_health() is False

    @pytest.mark.asyncio
    async def test_large_broadcast_finishes_within_scaled_deadline(self, database, make_orchestrator, push_sender):
        orchestrator = make_orchestrator(max_concurrency=2, dispatch_timeout_seconds=0.5)
        user_ids = [f"member-{n}" for n in range(20)]
        for user_id in user_ids:
            await orchestrator.register_device(user_id, f"token-{user_id}", "android")
        push_sender.latency = 0.1

        summary = await orchestrator.notify_many(user_ids, PushPayload(title="Clinic closed", body="Closed on Monday"))

        assert summary == DispatchSummary(targeted=20, sent=20, invalid=0, failed=0)
        assert await count_rows(database, DeliveryAuditEntry) == 20


# =============================================================================
# Concurrency
# =============================================================================


@pytest.mark.integration
class TestFanOutConcurrency:
    """Per-token units run side by side within the pool limit."""

    @pytest.mark.asyncio
    async def test_backoff_of_one_token_does_not_delay_others(self, make_orchestrator, push_sender):
        orchestrator = make_orchestrator(sleep=asyncio.sleep, initial_delay=0.3)
        await orchestrator.register_device("patient-1", "token-a", "web")
        await orchestrator.register_device("patient-1", "token-b", "web")
        push_sender.script("token-a", SendResult.transient("UNAVAILABLE"))
        push_sender.script("token-b", SendResult.transient("UNAVAILABLE"))

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push.sent == 2
        first_a, retry_a = push_sender.attempt_times["token-a"]
        first_b, retry_b = push_sender.attempt_times["token-b"]
        # Both first attempts happen before either backoff ends
        assert max(first_a, first_b) < min(retry_a, retry_b)

    @pytest.mark.asyncio
    async def test_in_flight_sends_never_exceed_max_concurrency(self, make_orchestrator, push_sender):
        orchestrator = make_orchestrator(max_concurrency=2)
        for n in range(6):
            await orchestrator.register_device("patient-1", f"token-{n}", "web")
        push_sender.latency = 0.05

        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        assert result.push.sent == 6
        assert push_sender.max_in_flight == 2


# =============================================================================
# Inbox
# =============================================================================


@pytest.mark.integration
class TestInbox:
    """Reading, marking and cleaning up notifications."""

    @pytest.mark.asyncio
    async def test_mark_read_by_owner(self, orchestrator):
        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        await orchestrator.mark_read(result.notification.id, "patient-1")

        (notification,) = await orchestrator.list_notifications("patient-1")
        assert notification.read is True

    @pytest.mark.asyncio
    async def test_mark_unread(self, orchestrator):
        result = await orchestrator.notify("patient-1", "info", "Hello", "World")
        await orchestrator.mark_read(result.notification.id, "patient-1")

        await orchestrator.mark_read(result.notification.id, "patient-1", read=False)

        assert len(await orchestrator.list_notifications("patient-1", unread_only=True)) == 1

    @pytest.mark.asyncio
    async def test_mark_read_by_other_user_raises_and_changes_nothing(self, orchestrator):
        result = await orchestrator.notify("patient-1", "info", "Hello", "World")

        with pytest.raises(NotificationNotFoundError) as exc_info:
            await orchestrator.mark_read(result.notification.id, "patient-2")

        assert exc_info.value.user_id == "patient-2"
        (notification,) = await orchestrator.list_notifications("patient-1")
        assert notification.read is False

    @pytest.mark.asyncio
    async def test_mark_read_unknown_id(self, orchestrator):
        with pytest.raises(NotificationNotFoundError):
            await orchestrator.mark_read(uuid.uuid4(), "patient-1")

    @pytest.mark.asyncio
    async def test_mark_all_read(self, orchestrator):
        for title in ("One", "Two", "Three"):
            await orchestrator.notify("patient-1", "info", title, "Body")
        await orchestrator.notify("patient-2", "info", "Other", "Body")

        changed = await orchestrator.mark_all_read("patient-1")

        assert changed == 3
        assert await orchestrator.list_notifications("patient-1", unread_only=True) == []
        assert len(await orchestrator.list_notifications("patient-2", unread_only=True)) == 1
        assert await orchestrator.mark_all_read("patient-1") == 0

    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_capped(self, database, make_orchestrator):
        orchestrator = make_orchestrator(page_size=2)
        for days_ago, title in ((3, "Oldest"), (2, "Middle"), (1, "Newest")):
            result = await orchestrator.notify("patient-1", "info", title, "Body")
            await age_notification(database, result.notification.id, days_ago)

        page = await orchestrator.list_notifications("patient-1", limit=10)

        assert [n.title for n in page] == ["Newest", "Middle"]
        assert [n.title for n in await orchestrator.list_notifications("patient-1", limit=1)] == ["Newest"]

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_old_read_notifications(self, database, orchestrator):
        old_read = (await orchestrator.notify("patient-1", "info", "Old read", "Body")).notification
        old_unread = (await orchestrator.notify("patient-1", "info", "Old unread", "Body")).notification
        new_read = (await orchestrator.notify("patient-1", "info", "New read", "Body")).notification
        await orchestrator.mark_read(old_read.id, "patient-1")
        await orchestrator.mark_read(new_read.id, "patient-1")
        await age_notification(database, old_read.id, 31)
        await age_notification(database, old_unread.id, 90)
        await age_notification(database, new_read.id, 29)

        deleted = await orchestrator.cleanup_old(30)

        assert deleted == 1
        remaining = {n.title for n in await orchestrator.list_notifications("patient-1")}
        assert remaining == {"Old unread", "New read"}

    @pytest.mark.asyncio
    async def test_cleanup_defaults_to_retention_days(self, database, make_orchestrator):
        orchestrator = make_orchestrator(retention_days=7)
        notification = (await orchestrator.notify("patient-1", "info", "Read", "Body")).notification
        await orchestrator.mark_read(notification.id, "patient-1")
        await age_notification(database, notification.id, 8)

        assert await orchestrator.cleanup_old() == 1

    @pytest.mark.asyncio
    async def test_cleanup_rejects_negative_days(self, orchestrator):
        with pytest.raises(ValueError, match="days_to_keep"):
            await orchestrator.cleanup_old(-1)


# =============================================================================
# Devices, preferences and stats
# =============================================================================


@pytest.mark.integration
class TestDevicesPreferencesStats:
    @pytest.mark.asyncio
    async def test_register_device_creates_preference_row(self, orchestrator):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        preferences = await orchestrator.get_preferences("patient-1")

        assert preferences.push_enabled is True
        assert preferences.marketing is False

    @pytest.mark.asyncio
    async def test_unregister_device(self, database, orchestrator):
        await orchestrator.register_device("patient-1", "token-aaa", "web")

        assert await orchestrator.unregister_device("token-aaa", "patient-1") == 1
        assert await orchestrator.unregister_device("token-aaa", "patient-1") == 0
        assert await count_rows(database, DeviceToken) == 0

    @pytest.mark.asyncio
    async def test_get_preferences_defaults_without_row(self, orchestrator):
        preferences = await orchestrator.get_preferences("patient-new")

        assert preferences.user_id == "patient-new"
        assert preferences.email_enabled is True
        assert preferences.marketing is False

    @pytest.mark.asyncio
    async def test_update_preferences_is_partial(self, orchestrator):
        await orchestrator.update_preferences("patient-1", {"marketing": True})
        updated = await orchestrator.update_preferences("patient-1", PreferencesUpdate(email_enabled=False))

        assert updated.marketing is True
        assert updated.email_enabled is False
        assert (await orchestrator.get_preferences("patient-1")).email_enabled is False

    @pytest.mark.asyncio
    async def test_update_preferences_rejects_unknown_fields(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.update_preferences("patient-1", {"sms_enabled": True})

    @pytest.mark.asyncio
    async def test_delivery_stats(self, orchestrator, push_sender):
        await orchestrator.register_device("patient-1", "token-ok", "web")
        await orchestrator.register_device("patient-1", "token-gone", "web")
        await orchestrator.register_device("patient-1", "token-down", "web")
        push_sender.script("token-gone", SendResult.invalid_token("messaging/registration-token-not-registered"))
        push_sender.script("token-down", *[SendResult.transient("UNAVAILABLE")] * 3)
        await orchestrator.notify("patient-1", "info", "Hello", "World")

        stats = await orchestrator.delivery_stats(DeliveryChannel.PUSH, hours=1)

        assert (stats.total, stats.sent, stats.invalid, stats.failed) == (3, 1, 1, 1)
        assert stats.failure_rate_percent == pytest.approx(33.33)

"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: isolated, cache-free settings
    - Database Fixtures: temporary file-backed SQLite through aiosqlite
    - Channel Fixtures: fake email/push senders that record calls
    - Orchestrator Fixtures: a fully wired NotificationOrchestrator

Fake senders never touch the network. Backoff sleeps are recorded instead
of slept, so retry tests run instantly and can assert the exact schedule.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping
import os
import time
from typing import TYPE_CHECKING

import pytest

from dispatch_service.core.delivery import SendResult
from dispatch_service.core.settings import NotificationSettings, clear_all_caches
from dispatch_service.features.notifications.channels import EmailComposer
from dispatch_service.features.notifications.exceptions import EmailDeliveryError
from dispatch_service.features.notifications.service import (
    NotificationOrchestrator,
    StaticRecipientDirectory,
)
from dispatch_service.infra.database import Database
from dispatch_service.utils.retry import RetryExecutor

if TYPE_CHECKING:
    from pathlib import Path

# Keep tests away from real infrastructure and any developer .env values
os.environ.setdefault("PUSH_ENABLED", "false")
os.environ.setdefault("EMAIL_BACKEND", "console")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _clear_settings_caches():
    """Drop cached settings before and after every test."""
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.fixture
def notification_settings() -> NotificationSettings:
    """Settings matching the documented defaults, independent of the environment."""
    return NotificationSettings(
        max_attempts=3,
        initial_delay=0.5,
        backoff_multiplier=2.0,
        max_delay=None,
        max_concurrency=8,
        dispatch_timeout_seconds=5.0,
        page_size=50,
        retention_days=30,
        stats_window_hours=24,
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database]:
    """Open a fresh file-backed SQLite database with all tables created.

    A file (not ``:memory:``) is used so that every session sees the same
    data regardless of which pooled connection it gets.
    """
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    await db.open()
    await db.create_all()
    yield db
    await db.close()


# ============================================================================
# Channel Fixtures
# ============================================================================


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeEmailSender:
    """Records sent emails; raises ``EmailDeliveryError`` when ``fail`` is set."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail: str | None = None

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("SMTP unavailable", error_code=self.fail, recipient=to_address)
        self.sent.append({"to": to_address, "subject": subject, "html": html_body})


class FakePushSender:
    """Scripted push sender.

    ``script(token, *results)`` queues outcomes for a token; once the queue
    is empty (or for unscripted tokens) sends are delivered. A result may
    also be an exception instance, which is raised.

    ``latency`` makes every send really sleep, and ``attempt_times`` and
    ``max_in_flight`` record when sends started and how many overlapped.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.topic_calls: list[str] = []
        self.payloads: list[dict[str, object]] = []
        self._scripts: dict[str, deque[SendResult | Exception]] = defaultdict(deque)
        self.topic_results: deque[SendResult] = deque()
        self.hang: set[str] = set()
        self.latency = 0.0
        self.attempt_times: dict[str, list[float]] = defaultdict(list)
        self.in_flight = 0
        self.max_in_flight = 0
        self.healthy = True

    def script(self, token: str, *results: SendResult | Exception) -> None:
        self._scripts[token].extend(results)

    def attempts_for(self, token: str) -> int:
        return self.calls.count(token)

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        self.calls.append(token)
        self.payloads.append({"token": token, "title": title, "body": body, "data": dict(data), "image_url": image_url})
        self.attempt_times[token].append(time.monotonic())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if token in self.hang:
                await asyncio.Event().wait()
            queue = self._scripts.get(token)
            if queue:
                result = queue.popleft()
                if isinstance(result, Exception):
                    raise result
                return result
            return SendResult.delivered()
        finally:
            self.in_flight -= 1

    async def send_to_topic(
        self,
        topic: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        self.topic_calls.append(topic)
        if self.topic_results:
            return self.topic_results.popleft()
        return SendResult.delivered()

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def directory() -> StaticRecipientDirectory:
    return StaticRecipientDirectory(
        {
            "patient-1": "patient1@example.com",
            "patient-2": "patient2@example.com",
        }
    )


@pytest.fixture
def composer() -> EmailComposer:
    return EmailComposer(subject_prefix="Quitline Alert", organization_name="Quitline Telehealth Services")


# ============================================================================
# Orchestrator Fixtures
# ============================================================================


@pytest.fixture
def make_orchestrator(
    database: Database,
    email_sender: FakeEmailSender,
    push_sender: FakePushSender,
    directory: StaticRecipientDirectory,
    composer: EmailComposer,
    notification_settings: NotificationSettings,
    recording_sleep: RecordingSleep,
) -> Callable[..., NotificationOrchestrator]:
    """Factory building an orchestrator; keyword overrides replace settings fields.

    Pass ``sleep=asyncio.sleep`` for tests that need real backoff waits.
    """

    def _make(
        *,
        sleep: Callable[[float], Awaitable[object]] | None = None,
        **settings_overrides: object,
    ) -> NotificationOrchestrator:
        settings = notification_settings.model_copy(update=settings_overrides)
        return NotificationOrchestrator(
            database,
            email_sender,
            push_sender,
            RetryExecutor.from_settings(settings, sleep=sleep or recording_sleep),
            directory,
            settings,
            composer=composer,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator: Callable[..., NotificationOrchestrator]) -> NotificationOrchestrator:
    return make_orchestrator()

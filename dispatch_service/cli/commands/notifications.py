"""Notification maintenance commands.

Example:bash
    # Delete read notifications older than 30 days
    dispatch-service notifications cleanup --days 30

    # Push to specific users
    dispatch-service notifications broadcast --title "Clinic closed" \\
        --body "The clinic is closed on Monday." --user u-1 --user u-2 --data kind=closure

    # Push to a provider topic
    dispatch-service notifications broadcast --title "Maintenance" --body "Tonight 2-4 AM" --topic all

    # Push delivery statistics for the last 24 hours
    dispatch-service notifications stats --hours 24

    # Verify push credentials with a dry-run send
    dispatch-service notifications push-health
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import json
import sys

import click
from pydantic import ValidationError

from dispatch_service.cli.utils import coro, error, header, info, key_values, success, warning
from dispatch_service.core.settings import get_db_settings, get_notification_settings
from dispatch_service.features.notifications.enums import DeliveryChannel
from dispatch_service.features.notifications.schemas import PushPayload
from dispatch_service.features.notifications.service import (
    NotificationOrchestrator,
    StaticRecipientDirectory,
    build_orchestrator,
)
from dispatch_service.infra.database import Database


@asynccontextmanager
async def _orchestrator() -> AsyncIterator[NotificationOrchestrator]:
    async with Database.from_settings(get_db_settings()) as database:
        yield build_orchestrator(database, StaticRecipientDirectory())


def _parse_data(pairs: tuple[str, ...]) -> dict[str, str]:
    data: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            msg = f"Expected KEY=VALUE, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--data")
        data[key] = value
    return data


@click.group(name="notifications")
def notifications() -> None:
    """Notification dispatch maintenance commands."""


@notifications.command()
@click.option(
    "--days",
    type=click.IntRange(min=0),
    default=None,
    help="Keep read notifications newer than this many days (default: NOTIFY_RETENTION_DAYS)",
)
@coro
async def cleanup(days: int | None) -> None:
    """Delete read notifications older than the retention period.

    Unread notifications are never deleted.
    """
    days = get_notification_settings().retention_days if days is None else days
    info(f"Deleting read notifications older than {days} day(s)...")

    try:
        async with _orchestrator() as orchestrator:
            deleted = await orchestrator.cleanup_old(days)
    except Exception as e:
        error(f"Cleanup failed: {e}")
        sys.exit(1)

    success(f"Deleted {deleted} notification(s)")


@notifications.command()
@click.option("--title", required=True, help="Notification title")
@click.option("--body", required=True, help="Notification body")
@click.option("--user", "users", multiple=True, help="Recipient user id (repeatable)")
@click.option("--topic", default=None, help="Provider topic to broadcast to instead of users")
@click.option("--data", "data_pairs", multiple=True, help="Extra data as KEY=VALUE (repeatable)")
@click.option("--image-url", default=None, help="Image shown with the notification")
@coro
async def broadcast(
    title: str,
    body: str,
    users: tuple[str, ...],
    topic: str | None,
    data_pairs: tuple[str, ...],
    image_url: str | None,
) -> None:
    """Send a push notification to users' devices or to a topic."""
    if bool(users) == bool(topic):
        raise click.UsageError("Give either --user (one or more) or --topic")

    try:
        payload = PushPayload(title=title, body=body, data=_parse_data(data_pairs), image_url=image_url)
    except ValidationError as e:
        error(f"Invalid notification: {e}")
        sys.exit(2)

    try:
        async with _orchestrator() as orchestrator:
            if topic:
                accepted = await orchestrator.send_topic(topic, payload)
            else:
                summary = await orchestrator.notify_many(list(users), payload)
    except Exception as e:
        error(f"Broadcast failed: {e}")
        sys.exit(1)

    if topic:
        if accepted:
            success(f"Sent to topic {topic!r}")
        else:
            error(f"Topic {topic!r} send failed after retries")
            sys.exit(1)
        return

    header("Broadcast summary")
    key_values(summary.model_dump(exclude={"skipped_reason"}))
    if summary.targeted == 0:
        warning("No enabled device tokens for the given users")
    elif summary.failed:
        warning(f"{summary.failed} token(s) failed after retries")
    else:
        success("Broadcast complete")


@notifications.command(name="push-health")
@coro
async def push_health() -> None:
    """Check that the push provider accepts the configured credentials.

    Sends a dry-run message, so no device receives anything.
    """
    header("Push Provider Health Check")
    try:
        async with _orchestrator() as orchestrator:
            healthy = await orchestrator.push_health()
    except Exception as e:
        error(f"Health check failed: {e}")
        sys.exit(1)

    if healthy:
        success("Push provider is healthy")
    else:
        error("Push provider rejected the credentials")
        sys.exit(1)


@notifications.command()
@click.option(
    "--hours",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Window size in hours (default: NOTIFY_STATS_WINDOW_HOURS)",
)
@click.option(
    "--channel",
    type=click.Choice([c.value for c in DeliveryChannel]),
    default=DeliveryChannel.PUSH.value,
    show_default=True,
    help="Delivery channel",
)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
@coro
async def stats(hours: float | None, channel: str, as_json: bool) -> None:
    """Show delivery statistics from the audit trail."""
    hours = get_notification_settings().stats_window_hours if hours is None else hours

    try:
        async with _orchestrator() as orchestrator:
            result = await orchestrator.delivery_stats(DeliveryChannel(channel), hours=hours)
    except Exception as e:
        error(f"Failed to load delivery stats: {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    header(f"{channel} delivery, last {hours:g} hour(s)")
    key_values(
        {
            "since": result.since.isoformat(),
            "until": result.until.isoformat(),
            "total": result.total,
            "sent": result.sent,
            "invalid": result.invalid,
            "failed": result.failed,
            "failure rate": f"{result.failure_rate_percent:.2f}%",
        }
    )

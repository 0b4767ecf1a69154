"""Delivery audit trail.

One ``DeliveryAuditEntry`` per final attempt outcome: per token for push,
per send for email. Entries are written in their own session so an audit
failure can never roll back, or be rolled back by, the dispatch that caused
it.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from dispatch_service.core.database import utcnow
from dispatch_service.core.delivery import SendOutcome
from dispatch_service.features.notifications.enums import DeliveryChannel
from dispatch_service.features.notifications.metrics import audit_write_failures_total
from dispatch_service.features.notifications.models import DeliveryAuditEntry
from dispatch_service.features.notifications.repository import AuditRepository
from dispatch_service.features.notifications.schemas import DeliveryStats
from dispatch_service.infra.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from dispatch_service.infra.database import Database

logger = get_logger(__name__)


class DeliveryAuditor:
    """Writes and summarizes delivery audit entries."""

    def __init__(
        self,
        database: Database,
        repository: AuditRepository | None = None,
        *,
        stats_window: timedelta = timedelta(hours=24),
    ) -> None:
        self._db = database
        self._repo = repository or AuditRepository()
        self._stats_window = stats_window

    async def record(
        self,
        user_id: str,
        channel: DeliveryChannel,
        outcome: SendOutcome,
        *,
        token_id: UUID | None = None,
        error_code: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Append one audit entry. Never raises.

        Args:
            user_id: Recipient user
            channel: email or push
            outcome: Final outcome of the attempt sequence
            token_id: Device token targeted (push only)
            error_code: Provider error code or message when not delivered
            context: Title and caller metadata, stored as JSON
        """
        entry = DeliveryAuditEntry(
            user_id=user_id,
            channel=channel,
            token_id=token_id,
            success=outcome is SendOutcome.DELIVERED,
            invalid=outcome is SendOutcome.INVALID_TOKEN,
            error_code=error_code[:255] if error_code else None,
            timestamp=utcnow(),
            context=dict(context or {}),
        )
        try:
            async with self._db.session() as session:
                session.add(entry)
        except Exception as exc:
            audit_write_failures_total.labels(channel=str(channel)).inc()
            logger.warning(
                "Failed to write delivery audit entry",
                extra={
                    "user_id": user_id,
                    "channel": str(channel),
                    "outcome": str(outcome),
                    "token_id": str(token_id) if token_id else None,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    async def delivery_stats(
        self,
        session: AsyncSession,
        channel: DeliveryChannel = DeliveryChannel.PUSH,
        since: datetime | None = None,
    ) -> DeliveryStats:
        """Summarize audit entries for a channel since ``since`` (default: the stats window).

        Returns:
            DeliveryStats with counts and failure rate over the window
        """
        until = utcnow()
        since = since or until - self._stats_window
        counts = await self._repo.outcome_counts(session, channel, since, until)
        total = counts["total"]
        # Invalid tokens are not counted as failures
        rate = round(counts["failed"] / total * 100, 2) if total else 0.0

        return DeliveryStats(
            channel=channel,
            since=since,
            until=until,
            total=total,
            sent=counts["sent"],
            invalid=counts["invalid"],
            failed=counts["failed"],
            failure_rate_percent=rate,
        )

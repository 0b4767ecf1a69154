"""Repositories for the notifications feature."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, delete, func, select, update

from dispatch_service.core.database import BaseRepository, utcnow
from dispatch_service.features.notifications.models import (
    DeliveryAuditEntry,
    DeviceToken,
    Notification,
    NotificationPreference,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from dispatch_service.features.notifications.enums import DeliveryChannel


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification model.

    Read-state changes are issued as bulk UPDATE statements filtered by id
    and owner, so a notification owned by someone else is never touched.
    """

    def __init__(self) -> None:
        """Initialize with Notification model."""
        super().__init__(Notification)

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
    ) -> Sequence[Notification]:
        """List a user's notifications, newest first.

        Args:
            session: Database session
            user_id: Owning user
            unread_only: Only return unread notifications
            limit: Max results

        Returns:
            Sequence of notifications
        """
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)

        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.list_for_user({user_id=}, {unread_only=}) -> {len(items)} notifications")
        return items

    async def set_read(
        self,
        session: AsyncSession,
        notification_id: UUID,
        user_id: str,
        *,
        read: bool = True,
    ) -> int:
        """Set the read flag of one notification owned by ``user_id``.

        Returns:
            Number of rows matched (0 when the id is unknown or owned by another user)
        """
        stmt = (
            update(Notification)
            .where(and_(Notification.id == notification_id, Notification.user_id == user_id))
            .values(read=read, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        matched = result.rowcount or 0

        self._lazy.debug(lambda: f"db.set_read({notification_id}, {user_id=}, {read=}) -> {matched} row(s)")
        return matched

    async def mark_all_read(self, session: AsyncSession, user_id: str) -> int:
        """Mark every unread notification of a user as read.

        Returns:
            Number of notifications changed
        """
        stmt = (
            update(Notification)
            .where(and_(Notification.user_id == user_id, Notification.read.is_(False)))
            .values(read=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        changed = result.rowcount or 0

        self._lazy.debug(lambda: f"db.mark_all_read({user_id=}) -> {changed} row(s)")
        return changed

    async def delete_read_before(self, session: AsyncSession, cutoff: datetime) -> int:
        """Delete read notifications created before ``cutoff``.

        Unread notifications are kept regardless of age.

        Returns:
            Number of notifications deleted
        """
        stmt = (
            delete(Notification)
            .where(and_(Notification.read.is_(True), Notification.created_at < cutoff))
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        deleted = result.rowcount or 0

        self._lazy.debug(lambda: f"db.delete_read_before({cutoff.isoformat()}) -> {deleted} row(s)")
        return deleted


class PreferenceRepository(BaseRepository[NotificationPreference]):
    """Repository for NotificationPreference model."""

    def __init__(self) -> None:
        """Initialize with NotificationPreference model."""
        super().__init__(NotificationPreference)

    async def get_for_user(self, session: AsyncSession, user_id: str) -> NotificationPreference | None:
        return await self.get_by(session, NotificationPreference.user_id, user_id)

    async def get_or_create(self, session: AsyncSession, user_id: str) -> NotificationPreference:
        """Return the user's preferences, creating the default row if missing.

        The insert is ON CONFLICT DO NOTHING so concurrent first dispatches
        for the same user converge on a single row.
        """
        existing = await self.get_for_user(session, user_id)
        if existing is not None:
            return existing

        preference = await self.upsert(
            session,
            {"user_id": user_id},
            conflict_columns=["user_id"],
        )
        self._logger.info(
            "Default notification preferences created",
            extra={"user_id": user_id, "operation": "db.preferences.create"},
        )
        return preference


class DeviceTokenRepository(BaseRepository[DeviceToken]):
    """Repository for DeviceToken model."""

    def __init__(self) -> None:
        """Initialize with DeviceToken model."""
        super().__init__(DeviceToken)

    async def list_enabled(self, session: AsyncSession, user_ids: Sequence[str]) -> Sequence[DeviceToken]:
        """List enabled tokens for one or more users.

        Args:
            session: Database session
            user_ids: Owning users

        Returns:
            Enabled tokens ordered by owner then registration time
        """
        stmt = (
            select(DeviceToken)
            .where(and_(DeviceToken.user_id.in_(list(user_ids)), DeviceToken.enabled.is_(True)))
            .order_by(DeviceToken.user_id, DeviceToken.created_at)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(lambda: f"db.list_enabled(users={len(user_ids)}) -> {len(items)} tokens")
        return items

    async def delete_by_token(self, session: AsyncSession, token: str, user_id: str | None = None) -> int:
        """Delete rows matching a token value, optionally restricted to one owner.

        Returns:
            Number of rows deleted (0 when nothing matched)
        """
        stmt = delete(DeviceToken).where(DeviceToken.token == token)
        if user_id is not None:
            stmt = stmt.where(DeviceToken.user_id == user_id)
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        deleted = result.rowcount or 0

        self._lazy.debug(lambda: f"db.delete_by_token({user_id=}) -> {deleted} row(s)")
        return deleted

    async def touch(self, session: AsyncSession, token_id: UUID, when: datetime) -> int:
        stmt = (
            update(DeviceToken)
            .where(DeviceToken.id == token_id)
            .values(last_used_at=when)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0


class AuditRepository(BaseRepository[DeliveryAuditEntry]):
    """Repository for DeliveryAuditEntry model."""

    def __init__(self) -> None:
        """Initialize with DeliveryAuditEntry model."""
        super().__init__(DeliveryAuditEntry)

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        channel: DeliveryChannel | None = None,
    ) -> Sequence[DeliveryAuditEntry]:
        stmt = select(DeliveryAuditEntry).where(DeliveryAuditEntry.user_id == user_id)
        if channel is not None:
            stmt = stmt.where(DeliveryAuditEntry.channel == channel)
        stmt = stmt.order_by(DeliveryAuditEntry.timestamp)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def outcome_counts(
        self,
        session: AsyncSession,
        channel: DeliveryChannel,
        since: datetime,
        until: datetime,
    ) -> dict[str, Any]:
        """Count audit entries in a time window, split by outcome.

        Returns:
            Dict with ``total``, ``sent`` (success), ``invalid`` and
            ``failed`` (neither success nor invalid) counts
        """
        success = func.sum(case((DeliveryAuditEntry.success.is_(True), 1), else_=0))
        invalid = func.sum(case((DeliveryAuditEntry.invalid.is_(True), 1), else_=0))
        stmt = select(func.count(), success, invalid).where(
            and_(
                DeliveryAuditEntry.channel == channel,
                DeliveryAuditEntry.timestamp >= since,
                DeliveryAuditEntry.timestamp <= until,
            ),
        )
        result = await session.execute(stmt)
        total, sent, invalid_count = result.one()
        total = total or 0
        sent = sent or 0
        invalid_count = invalid_count or 0

        self._lazy.debug(lambda: f"db.outcome_counts({channel=}) -> total={total} sent={sent} invalid={invalid_count}")
        return {
            "total": total,
            "sent": sent,
            "invalid": invalid_count,
            "failed": total - sent - invalid_count,
        }
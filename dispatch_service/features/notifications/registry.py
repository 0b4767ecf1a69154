"""Device token registry.

Owns the lifecycle of push device tokens: registration (upsert by token
value), explicit unregistration, lookup of enabled tokens, revocation after
a permanent provider rejection, and ``last_used_at`` bookkeeping.

Every operation takes an explicit session; the caller decides the
transaction boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dispatch_service.core.database import utcnow
from dispatch_service.features.notifications.enums import DeviceType
from dispatch_service.features.notifications.repository import DeviceTokenRepository
from dispatch_service.infra.logging import get_lazy_logger, get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from dispatch_service.features.notifications.models import DeviceToken

logger = get_logger(__name__)
lazy_logger = get_lazy_logger(__name__)


def _token_hint(token: str) -> str:
    """Shortened token for log records; full tokens are credentials."""
    return f"{token[:8]}..." if len(token) > 8 else token


class DeviceRegistry:
    """Registered push devices per user."""

    def __init__(self, repository: DeviceTokenRepository | None = None) -> None:
        self._repo = repository or DeviceTokenRepository()

    async def register(
        self,
        session: AsyncSession,
        user_id: str,
        token: str,
        device_type: DeviceType | str,
        device_info: Mapping[str, Any] | None = None,
    ) -> DeviceToken:
        """Register a device token for a user.

        Upserts by token value: a token already known (for this or another
        user) is re-owned by ``user_id``, re-enabled, its device metadata
        refreshed and ``last_used_at`` set to now. Calling it twice with the
        same arguments leaves a single row.

        Args:
            session: Database session
            user_id: Registering user
            token: Provider registration token
            device_type: web, ios or android
            device_info: Optional ``name`` and ``browser`` metadata

        Returns:
            The registered token row
        """
        if not token:
            msg = "token must not be empty"
            raise ValueError(msg)

        info = dict(device_info or {})
        now = utcnow()
        values = {
            "user_id": user_id,
            "token": token,
            "device_type": DeviceType(device_type),
            "device_name": info.get("name") or info.get("device_name"),
            "browser": info.get("browser"),
            "enabled": True,
            "last_used_at": now,
            "updated_at": now,
        }
        row = await self._repo.upsert(
            session,
            values,
            conflict_columns=["token"],
            update_columns=["user_id", "device_type", "device_name", "browser", "enabled", "last_used_at", "updated_at"],
        )
        logger.info(
            "Device token registered",
            extra={"user_id": user_id, "device_type": str(values["device_type"]), "token": _token_hint(token)},
        )
        return row

    async def unregister(self, session: AsyncSession, token: str, user_id: str | None = None) -> int:
        """Remove a token, optionally only when owned by ``user_id``.

        Returns:
            Number of rows removed
        """
        removed = await self._repo.delete_by_token(session, token, user_id)
        logger.info(
            "Device token unregistered",
            extra={"user_id": user_id, "token": _token_hint(token), "removed": removed},
        )
        return removed

    async def list_enabled_tokens(self, session: AsyncSession, user_id: str) -> Sequence[DeviceToken]:
        return await self._repo.list_enabled(session, [user_id])

    async def list_enabled_tokens_for_users(
        self,
        session: AsyncSession,
        user_ids: Sequence[str],
    ) -> Sequence[DeviceToken]:
        """Batch form of ``list_enabled_tokens``; empty input returns an empty list."""
        if not user_ids:
            return []
        return await self._repo.list_enabled(session, list(dict.fromkeys(user_ids)))

    async def revoke(self, session: AsyncSession, token: str) -> None:
        """Delete a token after a permanent rejection. Deleting twice is harmless."""
        removed = await self._repo.delete_by_token(session, token)
        if removed:
            logger.info("Invalid device token revoked", extra={"token": _token_hint(token)})
        else:
            lazy_logger.debug(lambda: f"Token {_token_hint(token)} already revoked")

    async def touch(self, session: AsyncSession, token_id: UUID) -> None:
        """Set ``last_used_at`` to now. A missing row is not an error."""
        updated = await self._repo.touch(session, token_id, utcnow())
        if not updated:
            lazy_logger.debug(lambda: f"touch skipped, token {token_id} no longer exists")

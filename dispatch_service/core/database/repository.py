"""Generic repository for SQLAlchemy models with explicit session passing.

Feature repositories subclass ``BaseRepository`` and add their own queries;
the base covers lookup by attribute, inserts and ON CONFLICT upserts.

Example:
    class DeviceTokenRepository(BaseRepository[DeviceToken]):
        def __init__(self) -> None:
            super().__init__(DeviceToken)

    row = await repo.upsert(session, values, conflict_columns=["token"])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from dispatch_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Thin convenience layer over an ``AsyncSession``; it holds no session state."""

    __slots__ = ("model", "_logger", "_lazy")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get_by(
        self,
        session: AsyncSession,
        attr: InstrumentedAttribute[Any],
        value: Any,
    ) -> T | None:
        """Get entity by arbitrary attribute.

        Args:
            session: Database session
            attr: Model attribute to filter by (e.g., DeviceToken.token)
            value: Value to match

        Returns:
            The matching entity, or None
        """
        stmt = select(self.model).where(attr == value)
        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()

        self._lazy.debug(
            lambda: f"db.get_by: {self.model.__name__}.{attr.key}={value!r} -> {'found' if instance else 'not found'}"
        )
        return instance

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Persist a new entity.

        Adds to session, flushes to get generated values (like id),
        and refreshes to ensure instance is up-to-date.

        Args:
            session: Database session
            instance: Entity instance to persist

        Returns:
            Persisted entity with generated fields populated
        """
        session.add(instance)
        await session.flush()
        await session.refresh(instance)

        entity_id = getattr(instance, "id", None)
        self._lazy.debug(lambda: f"db.create: {self.model.__name__}(id={entity_id})")
        return instance

    async def upsert(
        self,
        session: AsyncSession,
        values: dict[str, Any],
        *,
        conflict_columns: Sequence[str],
        update_columns: Sequence[str] = (),
    ) -> T:
        """Insert a row or update the existing one, atomically.

        Uses ON CONFLICT (PostgreSQL and SQLite) so concurrent callers racing
        on the same unique key converge on one row instead of failing. With
        no ``update_columns`` an existing row is left untouched.

        Args:
            session: Database session
            values: Column values for the new row (must include conflict_columns)
            conflict_columns: Columns of the unique constraint (e.g., ['token'])
            update_columns: Columns overwritten from ``values`` on conflict

        Returns:
            The inserted or existing entity, freshly loaded

        Example:
            token = await repo.upsert(
                session,
                {"token": value, "user_id": user_id},
                conflict_columns=["token"],
                update_columns=["user_id", "updated_at"],
            )
        """
        if not conflict_columns:
            msg = "conflict_columns must not be empty"
            raise ValueError(msg)

        dialect = session.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(self.model).values(**values)
        if update_columns:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict_columns),
                set_={col: stmt.excluded[col] for col in update_columns},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
        await session.execute(stmt)

        lookup = (
            select(self.model)
            .where(*(getattr(self.model, col) == values[col] for col in conflict_columns))
            .execution_options(populate_existing=True)
        )
        instance = (await session.execute(lookup)).scalar_one()

        self._lazy.debug(
            lambda: f"db.upsert: {self.model.__name__}(conflict={list(conflict_columns)}) -> id={getattr(instance, 'id', None)}"
        )
        return instance


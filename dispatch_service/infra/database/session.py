"""Database engine and session lifecycle.

``Database`` owns one async engine and its session factory. It is built
explicitly and handed to the components that need storage; nothing in the
package reaches for a module-level engine.

Example:
    db = Database.from_settings(get_db_settings())
    await db.open()
    async with db.session() as session:
        session.add(row)  # committed on exit, rolled back on error
    await db.close()
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from dispatch_service.core.database import Base
from dispatch_service.infra.logging import get_logger
from dispatch_service.infra.metrics.tracking import track_query_duration
from dispatch_service.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from dispatch_service.core.settings.database import DatabaseSettings

logger = get_logger(__name__)

_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE", "BEGIN", "COMMIT", "ROLLBACK")


def _statement_operation(statement: str) -> str:
    head = statement.lstrip()[:8].upper()
    for operation in _OPERATIONS:
        if head.startswith(operation):
            return operation
    return "UNKNOWN"


def _before_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    _ = conn, cursor, statement, parameters, executemany
    context._query_start_time = time.perf_counter()


def _after_cursor_execute(
    conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
) -> None:
    _ = conn, cursor, parameters, executemany
    started = getattr(context, "_query_start_time", None)
    if started is not None:
        track_query_duration(_statement_operation(statement), time.perf_counter() - started)


class Database:
    """Explicitly constructed engine + session factory with open/close lifecycle."""

    def __init__(
        self,
        url: str,
        *,
        connect_attempts: int = 1,
        connect_delay: float = 1.0,
        **engine_options: Any,
    ) -> None:
        self.url = url
        self._engine_options = engine_options
        self._connect_attempts = connect_attempts
        self._connect_delay = connect_delay
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> Database:
        return cls(
            settings.url,
            connect_attempts=settings.connect_retry_attempts,
            connect_delay=settings.connect_retry_delay,
            **settings.engine_options(),
        )

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            msg = "Database is not open; call open() first"
            raise RuntimeError(msg)
        return self._engine

    async def open(self) -> None:
        """Create the engine and verify connectivity.

        Connection failures are retried with backoff ``connect_attempts``
        times, so the service can start before its database is reachable.
        Calling ``open`` on an open database is a no-op.
        """
        if self._engine is not None:
            return

        engine = create_async_engine(self.url, **self._engine_options)
        event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)

        @retry(
            max_attempts=self._connect_attempts,
            initial_delay=self._connect_delay,
            max_delay=30.0,
            exceptions=(OSError, ConnectionError, TimeoutError),
        )
        async def _ping() -> None:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        try:
            await _ping()
        except Exception:
            await engine.dispose()
            logger.error("Failed to connect to database", extra={"url": self._safe_url(engine)})
            raise

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database connection established", extra={"url": self._safe_url(engine)})

    async def close(self) -> None:
        """Dispose of the engine. Safe to call on a closed database."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database connection closed")

    async def __aenter__(self) -> Database:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        if self._sessionmaker is None:
            msg = "Database is not open; call open() first"
            raise RuntimeError(msg)
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every table known to the declarative metadata."""
        # Register the models on Base.metadata
        import dispatch_service.features.notifications.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        import dispatch_service.features.notifications.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @staticmethod
    def _safe_url(engine: AsyncEngine) -> str:
        return engine.url.render_as_string(hide_password=True)

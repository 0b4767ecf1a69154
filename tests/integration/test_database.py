"""Integration tests for the Database lifecycle and Alembic migrations."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect, select

from dispatch_service.features.notifications.models import Notification
from dispatch_service.infra.database import Database, MigrationRunner

NOTIFICATION_TABLES = {"notifications", "notification_preferences", "device_tokens", "delivery_audit_entries"}


async def table_names(database: Database) -> set[str]:
    async with database.engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


@pytest.mark.integration
class TestDatabase:
    """Database open/close and session semantics."""

    @pytest.mark.asyncio
    async def test_session_before_open_raises(self, tmp_path):
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'x.db'}")

        assert database.is_open is False
        with pytest.raises(RuntimeError, match="not open"):
            async with database.session():
                pass

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes(self, tmp_path):
        async with Database(f"sqlite+aiosqlite:///{tmp_path / 'x.db'}") as database:
            assert database.is_open is True
            await database.create_all()
            assert NOTIFICATION_TABLES <= await table_names(database)

        assert database.is_open is False

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError, match="boom"):
            async with database.session() as session:
                session.add(Notification(user_id="patient-1", kind="info", title="t", body="b"))
                await session.flush()
                raise RuntimeError("boom")

        async with database.session() as session:
            assert (await session.execute(select(Notification))).scalars().all() == []


@pytest.mark.integration
class TestMigrationRunner:
    """Running the bundled Alembic migrations against SQLite."""

    @pytest.mark.asyncio
    async def test_upgrade_current_and_downgrade(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}"
        runner = MigrationRunner(url)

        await runner.upgrade("head")

        assert "(head)" in await runner.current()
        async with Database(url) as database:
            assert NOTIFICATION_TABLES <= await table_names(database)

        await runner.downgrade("base")

        async with Database(url) as database:
            assert not NOTIFICATION_TABLES & await table_names(database)

    @pytest.mark.asyncio
    async def test_offline_upgrade_renders_sql(self, tmp_path):
        runner = MigrationRunner(f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}")

        sql = await runner.upgrade("head", sql=True)

        assert "CREATE TABLE notifications" in sql
        assert "CREATE TABLE delivery_audit_entries" in sql

    def test_missing_ini_raises(self, tmp_path):
        runner = MigrationRunner("sqlite+aiosqlite:///x.db", ini_path=tmp_path / "missing.ini")

        with pytest.raises(FileNotFoundError):
            runner.get_alembic_config()

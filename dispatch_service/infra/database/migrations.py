"""Programmatic Alembic command interface.

Runs Alembic commands from Python (the ``db upgrade`` CLI command) instead
of shelling out. Alembic is synchronous and its env.py starts its own event
loop, so each command runs in a worker thread.

Example:
    runner = MigrationRunner(get_db_settings().url)
    output = await runner.upgrade("head")
    revision = await runner.current()
"""

from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

# Repository root: dispatch_service/infra/database/ -> three levels up
PROJECT_ROOT = Path(__file__).resolve().parents[3]


class MigrationRunner:
    """Runs Alembic commands against one database URL."""

    def __init__(
        self,
        url: str,
        *,
        ini_path: Path | None = None,
        script_location: Path | None = None,
        render_as_batch: bool = False,
    ) -> None:
        self.url = url
        self.ini_path = ini_path or PROJECT_ROOT / "alembic.ini"
        self.script_location = script_location or PROJECT_ROOT / "alembic"
        self.render_as_batch = render_as_batch

    def get_alembic_config(self, output_buffer: io.StringIO | None = None) -> Config:
        """Build an Alembic config pointing at ``self.url``.

        Raises:
            FileNotFoundError: If alembic.ini is missing
        """
        if not self.ini_path.exists():
            msg = f"alembic.ini not found at {self.ini_path}"
            raise FileNotFoundError(msg)

        buffer = output_buffer or io.StringIO()
        # stdout receives command messages, output_buffer the offline SQL
        config = Config(str(self.ini_path), output_buffer=buffer, stdout=buffer)
        config.set_main_option("script_location", str(self.script_location))
        config.set_main_option("sqlalchemy.url", self.url.replace("%", "%%"))

        # Read by env.py
        config.attributes["url_from_caller"] = True
        config.attributes["skip_logging_config"] = True
        config.attributes["render_as_batch"] = self.render_as_batch
        return config

    async def upgrade(self, revision: str = "head", *, sql: bool = False) -> str:
        """Upgrade the database to ``revision``.

        Returns:
            Command output (the SQL script when ``sql`` is True)
        """
        logger.info(f"Upgrading database to revision: {revision}")
        output = io.StringIO()
        config = self.get_alembic_config(output)
        await asyncio.to_thread(command.upgrade, config, revision, sql=sql)
        logger.info(f"Upgrade completed to: {revision}")
        return output.getvalue()

    async def downgrade(self, revision: str = "-1", *, sql: bool = False) -> str:
        logger.info(f"Downgrading database to revision: {revision}")
        output = io.StringIO()
        config = self.get_alembic_config(output)
        await asyncio.to_thread(command.downgrade, config, revision, sql=sql)
        return output.getvalue()

    async def current(self) -> str:
        """Return Alembic's report of the current revision."""
        output = io.StringIO()
        config = self.get_alembic_config(output)
        await asyncio.to_thread(command.current, config)
        return output.getvalue().strip()

"""Database management commands.

Example:bash
    # Apply all pending migrations
    dispatch-service db upgrade

    # Print the migration SQL instead of running it
    dispatch-service db upgrade --sql

    # Create tables straight from the models (development and tests)
    dispatch-service db create
"""

import sys

import click

from dispatch_service.cli.utils import coro, error, info, success
from dispatch_service.core.settings import get_db_settings
from dispatch_service.infra.database import Database, MigrationRunner


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def create() -> None:
    """Create all tables from the SQLAlchemy models.

    Skips Alembic entirely; use ``db upgrade`` for managed databases.
    """
    settings = get_db_settings()
    info(f"Creating tables in: {settings.url.split('@')[-1]}")

    try:
        async with Database.from_settings(settings) as database:
            await database.create_all()
    except Exception as e:
        error(f"Failed to create tables: {e}")
        sys.exit(1)

    success("Database tables created successfully")


@db.command()
@click.option(
    "--revision",
    default="head",
    help="Target revision (default: head)",
)
@click.option(
    "--sql/--no-sql",
    default=False,
    help="Output SQL without executing",
)
@coro
async def upgrade(revision: str, sql: bool) -> None:
    """Apply database migrations."""
    info(f"Upgrading database to: {revision}")

    try:
        runner = MigrationRunner(get_db_settings().url)
        output = await runner.upgrade(revision, sql=sql)

        if output:
            click.echo(output)

        if not sql:
            success("Database upgraded successfully!")

    except Exception as e:
        error(f"Failed to upgrade database: {e}")
        sys.exit(1)


@db.command()
@coro
async def current() -> None:
    """Show the current migration revision."""
    try:
        output = await MigrationRunner(get_db_settings().url).current()
    except Exception as e:
        error(f"Failed to read current revision: {e}")
        sys.exit(1)

    click.echo(output or "No migrations applied")

"""Main CLI entry point for dispatch-service management commands."""

import click

from dispatch_service import __version__
from dispatch_service.cli.commands import db, notifications
from dispatch_service.infra.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="dispatch-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Dispatch Service CLI - maintenance commands for notification delivery.

    \b
    Command Groups:
      db             Database schema and migrations
      notifications  Retention cleanup, broadcasts and delivery stats

    \b
    Quick Start:
      dispatch-service db upgrade                       # Apply migrations
      dispatch-service notifications cleanup --days 30  # Retention sweep
      dispatch-service notifications stats              # Last 24h push stats
    """
    ctx.ensure_object(dict)


cli.add_command(db.db)
cli.add_command(notifications.notifications)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()

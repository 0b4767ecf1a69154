"""Database engine, session lifecycle and migrations."""

from __future__ import annotations

from dispatch_service.infra.database.migrations import MigrationRunner
from dispatch_service.infra.database.session import Database

__all__ = ["Database", "MigrationRunner"]

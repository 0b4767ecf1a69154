"""Core database package with composable base classes, mixins, and repository.

Base Classes and Mixins:
    - Base: Declarative base with auto table naming and constraint conventions
    - UUIDPKMixin: UUID v4 primary key
    - TimestampMixin: created_at, updated_at tracking
    - UUIDTimestampedBase: UUID PK + timestamps

Repository:
    - BaseRepository[T]: lookup, insert and upsert with explicit session passing

Exceptions:
    - RepositoryError: Base exception for repository operations
    - NotFoundError: Entity not found (404-like)
"""

from __future__ import annotations

from dispatch_service.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TimestampMixin,
    UUIDPKMixin,
    UUIDTimestampedBase,
    utcnow,
)
from dispatch_service.core.database.exceptions import NotFoundError, RepositoryError
from dispatch_service.core.database.repository import BaseRepository

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "NotFoundError",
    "RepositoryError",
    "TimestampMixin",
    "UUIDPKMixin",
    "UUIDTimestampedBase",
    "utcnow",
]

"""Storage-layer exceptions raised by repositories and services."""
from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """A repository operation could not be completed.

    ``details`` carries structured context (ids, owners) that is rendered
    into ``str(exc)`` and can be passed straight to a log call's ``extra``.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        rendered = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({rendered})"


class NotFoundError(RepositoryError):
    """No row of ``entity`` matched the lookup keys.

    Ownership-scoped lookups raise this too, so callers cannot tell a
    missing row from somebody else's row.
    """

    def __init__(self, entity: str, keys: dict[str, Any]) -> None:
        self.entity = entity
        self.keys = keys
        super().__init__(f"{entity} not found", details={"entity": entity, **keys})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entity={self.entity!r}, keys={self.keys!r})"

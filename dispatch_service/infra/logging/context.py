"""Context management for structured logging.

Provides automatic context injection into log records using contextvars,
so identifiers such as ``user_id`` or ``notification_id`` set once at the
start of a dispatch show up on every record emitted while it runs,
including records from the per-token tasks it spawns (tasks copy the
current context when they are created).
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

# Each async task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for the current async task.

    All subsequent log calls in this context will automatically include
    these fields on the log record.

    Example:
        ```python
        set_log_context(user_id="u-1", notification_id=str(row.id))
        logger.info("Dispatching")  # Includes user_id and notification_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current async task.

    Useful in tests and in long-running loops that process many users.
    """
    _log_context.set({})


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the contextvars log context into records.

    Attached to the root logger by ``configure_logging`` so every logger
    benefits without code changes:

        ```python
        config = {
            "filters": {
                "context": {
                    "()": "dispatch_service.infra.logging.context.ContextInjectingFilter"
                }
            },
            "root": {"handlers": ["queue"], "filters": ["context"]},
        }
        ```
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record. Always lets the record through."""
        for key, value in _log_context.get().items():
            # Don't overwrite existing attributes
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class ContextBoundLogger(logging.LoggerAdapter):
    """Logger adapter that binds context to a logger instance.

    Example:
        ```python
        logger = get_logger(__name__, component="push")
        token_logger = logger.bind(token_id="t-1")
        token_logger.info("Attempt finished")  # Has component and token_id
        ```
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, context)

    def bind(self, **context: Any) -> ContextBoundLogger:
        """Create new logger with additional bound context."""
        merged = {**self.extra, **context}
        return ContextBoundLogger(self.logger, **merged)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge bound context with any ``extra`` passed to the log call."""
        extra = kwargs.get("extra", {})
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


def get_logger(name: str, **context: Any) -> ContextBoundLogger:
    """Get logger with bound context.

    Args:
        name: Logger name.
        **context: Context to add to all log messages.

    Returns:
        Logger adapter with context.
    """
    return ContextBoundLogger(logging.getLogger(name), **context)

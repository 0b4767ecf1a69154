"""Logging infrastructure.

Provides structured logging with:
- JSONL format for Loki/Elasticsearch ingestion
- Automatic context injection (user_id, notification_id, etc.)
- QueueHandler + QueueListener for non-blocking I/O
- Optional rotating JSONL file next to the console output
- Lazy evaluation for expensive debug lines
- OpenTelemetry trace correlation

Basic usage:
    from dispatch_service.infra.logging import get_logger, set_log_context

    logger = get_logger(__name__)

    set_log_context(user_id="u-1")
    logger.info("Dispatching notification")  # Includes user_id

    from dispatch_service.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Tokens: {describe(tokens)}")  # Only runs if DEBUG enabled
"""

from dispatch_service.infra.logging.config import configure_logging, setup_logging, shutdown
from dispatch_service.infra.logging.context import (
    ContextBoundLogger,
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)
from dispatch_service.infra.logging.formatters import JSONFormatter
from dispatch_service.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextBoundLogger",
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "get_logger",
    "set_log_context",
    "setup_logging",
    "shutdown",
]

"""Helpers that record infrastructure metrics without leaking label details."""

from __future__ import annotations

from dispatch_service.infra.metrics import prometheus


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Number of the attempt about to be made (1-indexed)

    Example:
            track_retry_attempt("push.send", 2)
    """
    prometheus.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    """Track when all retry attempts are exhausted."""
    prometheus.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Track successful operation after retries.

    Args:
        operation: Name of the operation
        attempts_needed: Number of attempts needed to succeed
    """
    prometheus.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


def track_query_duration(operation: str, duration: float) -> None:
    """Record one statement's duration; count it as slow past one second."""
    prometheus.database_query_duration_seconds.labels(operation=operation).observe(duration)
    if duration > 1.0:
        prometheus.slow_queries_total.labels(operation=operation).inc()

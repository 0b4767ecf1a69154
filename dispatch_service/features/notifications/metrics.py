"""Prometheus metrics for notification dispatch.

Usage:
    from dispatch_service.features.notifications.metrics import (
        notification_created_total,
        notification_delivered_total,
    )

    notification_created_total.labels(kind="prescription", priority="high").inc()
    notification_delivered_total.labels(channel="push", outcome="delivered").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from dispatch_service.infra.metrics.prometheus import REGISTRY

# =============================================================================
# Notification Lifecycle Metrics
# =============================================================================

notification_created_total = Counter(
    "notification_created_total",
    "Total number of in-app notifications created",
    labelnames=["kind", "priority"],
    registry=REGISTRY,
)
"""
Labels:
    kind: Notification kind (info, alert, prescription ...)
    priority: high, medium or low
"""

notification_read_total = Counter(
    "notification_read_total",
    "Total number of notifications marked as read",
    labelnames=["mode"],
    registry=REGISTRY,
)
"""
Labels:
    mode: single or bulk
"""

notification_cleanup_total = Counter(
    "notification_cleanup_total",
    "Total number of read notifications removed by the retention sweep",
    registry=REGISTRY,
)

# =============================================================================
# Delivery Metrics
# =============================================================================

notification_delivered_total = Counter(
    "notification_delivered_total",
    "Final delivery outcomes by channel",
    labelnames=["channel", "outcome"],
    registry=REGISTRY,
)
"""
Counter of final (post-retry) outcomes.

Labels:
    channel: email or push
    outcome: delivered, invalid_token, transient_failure or skipped
"""

push_attempts_per_token = Histogram(
    "push_attempts_per_token",
    "Number of send attempts made for one device token",
    buckets=[1, 2, 3, 4, 5, 7, 10],
    registry=REGISTRY,
)

notification_dispatch_duration_seconds = Histogram(
    "notification_dispatch_duration_seconds",
    "Duration of one dispatch call in seconds",
    labelnames=["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)
"""
Labels:
    operation: notify, notify_many or send_topic
"""

push_dispatch_timeouts_total = Counter(
    "push_dispatch_timeouts_total",
    "Push fan-outs cut short by the dispatch deadline",
    registry=REGISTRY,
)

# =============================================================================
# Bookkeeping Metrics
# =============================================================================

device_tokens_revoked_total = Counter(
    "device_tokens_revoked_total",
    "Device tokens deleted after a permanent provider rejection",
    registry=REGISTRY,
)

audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Delivery audit entries that could not be written",
    labelnames=["channel"],
    registry=REGISTRY,
)

bookkeeping_failures_total = Counter(
    "notification_bookkeeping_failures_total",
    "Token revoke/touch writes that failed during dispatch",
    labelnames=["operation"],
    registry=REGISTRY,
)

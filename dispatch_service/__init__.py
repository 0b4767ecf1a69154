"""Notification dispatch service.

Delivers logical notifications to users across the in-app record, email and
mobile push channels with per-channel failure isolation, device token
lifecycle management, bounded retries and an auditable delivery trail.
"""

__version__ = "0.1.0"

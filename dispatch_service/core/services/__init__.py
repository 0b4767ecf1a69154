"""Service layer base classes."""

from __future__ import annotations

from dispatch_service.core.services.base import BaseService

__all__ = ["BaseService"]

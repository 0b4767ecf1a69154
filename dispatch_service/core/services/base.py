"""Base service class for business logic."""

from __future__ import annotations

from dispatch_service.infra.logging import ContextBoundLogger, get_lazy_logger, get_logger


class BaseService:
    """Base class for service classes.

    Loggers:
        - self.logger: Context-bound logger for INFO/WARNING/ERROR
        - self._lazy: Lazy logger for DEBUG (zero overhead when DEBUG disabled)

    A logger can be injected, e.g. one already bound to a request or job.

    Example:
        class PreferenceService(BaseService):
            async def update(self, user_id: str) -> None:
                self.logger.bind(user_id=user_id).info("Updating preferences")
                self._lazy.debug(lambda: f"State: {expensive_computation()}")
    """

    def __init__(self, logger: ContextBoundLogger | None = None) -> None:
        """Initialize base service with loggers."""
        name = f"{type(self).__module__}.{type(self).__name__}"
        self.logger = logger or get_logger(name)
        self._lazy = get_lazy_logger(name)

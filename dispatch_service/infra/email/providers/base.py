"""Email provider contract.

A provider turns an ``EmailMessage`` into an ``EmailDeliveryResult``. It
never raises: ``BaseEmailProvider.send`` converts exceptions from
``_do_send`` (including an exhausted transport retry) into failed results
and logs every outcome with its duration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
import logging
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from dispatch_service.utils.retry import RetryError

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings
    from dispatch_service.infra.email.schemas import EmailMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailDeliveryResult:
    """Outcome of one send.

    ``error_code`` is a stable category (``RECIPIENTS_REFUSED``,
    ``AUTH_FAILED``, ``RETRY_EXHAUSTED``, ...) that ends up in the audit trail.
    """

    success: bool
    provider: str
    message_id: str | None = None
    recipients_accepted: list[str] = field(default_factory=list)
    recipients_rejected: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    duration_ms: int | None = None

    @classmethod
    def sent(cls, provider: str, message_id: str, recipients: list[str]) -> EmailDeliveryResult:
        return cls(success=True, provider=provider, message_id=message_id, recipients_accepted=recipients)

    @classmethod
    def failed(
        cls,
        provider: str,
        error: str,
        error_code: str,
        *,
        recipients_rejected: list[str] | None = None,
        duration_ms: int | None = None,
    ) -> EmailDeliveryResult:
        return cls(
            success=False,
            provider=provider,
            recipients_rejected=recipients_rejected or [],
            error=error,
            error_code=error_code,
            duration_ms=duration_ms,
        )


@runtime_checkable
class EmailProvider(Protocol):
    @property
    def provider_name(self) -> str:
        ...

    async def send(self, message: EmailMessage) -> EmailDeliveryResult:
        """Send ``message``. Failures are reported in the result, not raised."""
        ...


class BaseEmailProvider(ABC):
    """Shared ``send`` wrapper; subclasses implement ``_do_send`` and ``provider_name``."""

    def __init__(self, settings: EmailSettings) -> None:
        self._settings = settings
        logger.info(f"{self.provider_name} email provider initialized")

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def _do_send(self, message: EmailMessage) -> EmailDeliveryResult:
        ...

    async def send(self, message: EmailMessage) -> EmailDeliveryResult:
        started = time.perf_counter()
        try:
            result = await self._do_send(message)
        except RetryError as e:
            result = EmailDeliveryResult.failed(self.provider_name, str(e.last_exception), "RETRY_EXHAUSTED")
        except Exception as e:
            logger.exception(f"Unexpected error in {self.provider_name} provider", extra={"provider": self.provider_name})
            result = EmailDeliveryResult.failed(self.provider_name, str(e), "UNEXPECTED_ERROR")

        if result.duration_ms is None:
            result = replace(result, duration_ms=int((time.perf_counter() - started) * 1000))

        extra = {"provider": self.provider_name, "duration_ms": result.duration_ms}
        if result.success:
            logger.info(
                f"Email sent via {self.provider_name}",
                extra={**extra, "message_id": result.message_id, "recipients": len(result.recipients_accepted)},
            )
        else:
            logger.warning(
                f"Email send failed via {self.provider_name}",
                extra={**extra, "error": result.error, "error_code": result.error_code},
            )
        return result

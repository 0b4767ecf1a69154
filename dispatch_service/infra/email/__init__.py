"""Email transport: message model and console/SMTP providers."""

from __future__ import annotations

from dispatch_service.infra.email.providers import (
    BaseEmailProvider,
    ConsoleProvider,
    EmailDeliveryResult,
    EmailProvider,
    SMTPProvider,
    create_email_provider,
)
from dispatch_service.infra.email.schemas import EmailMessage

__all__ = [
    "BaseEmailProvider",
    "ConsoleProvider",
    "EmailDeliveryResult",
    "EmailMessage",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
]

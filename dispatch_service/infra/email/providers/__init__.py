"""Email providers.

Usage:
    provider = create_email_provider(get_email_settings())
    result = await provider.send(message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import BaseEmailProvider, EmailDeliveryResult, EmailProvider
from .console import ConsoleProvider
from .smtp import SMTPProvider

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings

_PROVIDERS: dict[str, type[BaseEmailProvider]] = {
    "console": ConsoleProvider,
    "smtp": SMTPProvider,
}


def create_email_provider(settings: EmailSettings) -> BaseEmailProvider:
    """Build the provider selected by ``settings.backend``."""
    try:
        provider_class = _PROVIDERS[settings.backend]
    except KeyError:
        msg = f"Unknown email backend: {settings.backend!r}"
        raise ValueError(msg) from None
    return provider_class(settings)


__all__ = [
    "BaseEmailProvider",
    "ConsoleProvider",
    "EmailDeliveryResult",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
]

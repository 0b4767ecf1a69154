"""Console email provider for development.

Logs emails instead of sending them, and keeps the last messages in memory
so local runs and tests can inspect what would have gone out.
"""

from __future__ import annotations

from collections import deque
import logging
from typing import TYPE_CHECKING
import uuid

from .base import BaseEmailProvider, EmailDeliveryResult

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings
    from dispatch_service.infra.email.schemas import EmailMessage

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500


class ConsoleProvider(BaseEmailProvider):
    """Console email provider. Always succeeds (no real delivery).

    Example:
        provider = ConsoleProvider(settings)
        result = await provider.send(message)
        assert result.success
        assert provider.outbox[-1].subject == message.subject
    """

    def __init__(self, settings: EmailSettings, *, keep_last: int = 100) -> None:
        super().__init__(settings)
        self.outbox: deque[EmailMessage] = deque(maxlen=keep_last)

    @property
    def provider_name(self) -> str:
        return "console"

    async def _do_send(self, message: EmailMessage) -> EmailDeliveryResult:
        message_id = f"console-{uuid.uuid4()}"
        from_email = message.from_email or self._settings.default_from_email
        from_name = message.from_name or self._settings.default_from_name

        separator = "=" * 60
        lines = [
            "",
            separator,
            "EMAIL (Console Backend - Development Mode)",
            separator,
            f"Message-ID: {message_id}",
            f"From: {from_name} <{from_email}>",
            f"To: {', '.join(message.to)}",
            f"Subject: {message.subject}",
            separator,
        ]
        if message.body_html:
            lines.append(message.body_html[:PREVIEW_CHARS])
            if len(message.body_html) > PREVIEW_CHARS:
                lines.append(f"... ({len(message.body_html) - PREVIEW_CHARS} more characters)")
        lines.extend([separator, ""])

        logger.info("\n".join(lines), extra={"message_id": message_id})
        self.outbox.append(message)

        return EmailDeliveryResult.sent(self.provider_name, message_id, list(message.to))


__all__ = ["ConsoleProvider"]

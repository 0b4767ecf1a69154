"""SMTP email provider using aiosmtplib.

- STARTTLS (port 587), implicit SSL/TLS (port 465) or plain (port 25)
- Optional LOGIN/PLAIN authentication
- Connection-level failures retried with exponential backoff
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import ssl
from typing import TYPE_CHECKING
import uuid

import aiosmtplib

from dispatch_service.utils.retry import retry

from .base import BaseEmailProvider, EmailDeliveryResult

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings
    from dispatch_service.infra.email.schemas import EmailMessage

logger = logging.getLogger(__name__)


class SMTPProvider(BaseEmailProvider):
    """SMTP email provider using native async aiosmtplib.

    Example:
        provider = SMTPProvider(EmailSettings(backend="smtp", smtp_host="smtp.example.com"))
        result = await provider.send(message)
    """

    def __init__(self, settings: EmailSettings) -> None:
        super().__init__(settings)
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._username = settings.smtp_username
        self._password = (
            settings.smtp_password.get_secret_value() if settings.smtp_password else None
        )
        self._use_tls = settings.use_tls
        self._use_ssl = settings.use_ssl

        # Attempt count comes from settings, so wrap per instance
        self._send_with_retry = retry(
            max_attempts=settings.max_retries,
            initial_delay=1.0,
            max_delay=10.0,
            exceptions=(OSError, ConnectionError, TimeoutError),
        )(self._send_once)

        logger.info(
            "SMTP provider initialized",
            extra={
                "host": self._host,
                "port": self._port,
                "use_tls": self._use_tls,
                "use_ssl": self._use_ssl,
            },
        )

    @property
    def provider_name(self) -> str:
        return "smtp"

    def _create_ssl_context(self) -> ssl.SSLContext | None:
        if not (self._use_tls or self._use_ssl):
            return None

        context = ssl.create_default_context()
        if not self._settings.validate_certs:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _client(self, timeout: float) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            use_tls=self._use_ssl,  # Implicit TLS
            start_tls=self._use_tls,  # STARTTLS
            tls_context=self._create_ssl_context(),
            timeout=timeout,
        )

    async def _do_send(self, message: EmailMessage) -> EmailDeliveryResult:
        return await self._send_with_retry(message)

    async def _send_once(self, message: EmailMessage) -> EmailDeliveryResult:
        mime_message = self._build_mime_message(message)
        message_id = mime_message["Message-ID"]

        try:
            smtp = self._client(self._settings.timeout)
            async with smtp:
                if self._username and self._password:
                    await smtp.login(self._username, self._password)
                errors, _response = await smtp.send_message(mime_message)
        except aiosmtplib.SMTPAuthenticationError as e:
            return EmailDeliveryResult.failed(
                self.provider_name,
                f"SMTP authentication failed: {e}",
                "AUTH_FAILED",
                recipients_rejected=list(message.to),
            )
        except aiosmtplib.SMTPRecipientsRefused as e:
            return EmailDeliveryResult.failed(
                self.provider_name,
                f"All recipients refused: {e}",
                "RECIPIENTS_REFUSED",
                recipients_rejected=list(message.to),
            )
        except (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
        ):
            # Connection-level: let the retry wrapper see it
            raise
        except aiosmtplib.SMTPException as e:
            return EmailDeliveryResult.failed(self.provider_name, f"SMTP error: {e}", "SMTP_ERROR")

        recipients_rejected = list(errors.keys()) if errors else []
        recipients_accepted = [r for r in message.to if r not in recipients_rejected]
        if recipients_rejected:
            logger.warning(
                "Some SMTP recipients rejected",
                extra={
                    "message_id": message_id,
                    "rejected": recipients_rejected,
                    "errors": {k: str(v) for k, v in errors.items()},
                },
            )

        if not recipients_accepted:
            return EmailDeliveryResult.failed(
                self.provider_name,
                "No recipient accepted the message",
                "RECIPIENTS_REFUSED",
                recipients_rejected=recipients_rejected,
            )

        return EmailDeliveryResult(
            success=True,
            message_id=message_id,
            provider=self.provider_name,
            recipients_accepted=recipients_accepted,
            recipients_rejected=recipients_rejected,
        )

    def _build_mime_message(self, message: EmailMessage) -> MIMEMultipart:
        mime_msg = MIMEMultipart("alternative")

        from_email = message.from_email or self._settings.default_from_email
        from_name = message.from_name or self._settings.default_from_name
        mime_msg["From"] = f"{from_name} <{from_email}>" if from_name else str(from_email)
        mime_msg["To"] = ", ".join(message.to)
        mime_msg["Subject"] = message.subject
        mime_msg["Message-ID"] = f"<{uuid.uuid4()}@{self._host}>"
        mime_msg["Date"] = datetime.now(UTC).strftime("%a, %d %b %Y %H:%M:%S +0000")

        for key, value in message.headers.items():
            mime_msg[key] = value

        if message.body_text:
            mime_msg.attach(MIMEText(message.body_text, "plain", "utf-8"))
        if message.body_html:
            mime_msg.attach(MIMEText(message.body_html, "html", "utf-8"))

        return mime_msg


__all__ = ["SMTPProvider"]

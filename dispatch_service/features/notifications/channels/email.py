"""Email channel: HTML composition and the provider-backed sender."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jinja2 import select_autoescape
from jinja2.sandbox import SandboxedEnvironment

from dispatch_service.features.notifications.exceptions import EmailDeliveryError
from dispatch_service.infra.email import EmailMessage
from dispatch_service.infra.logging import get_logger

if TYPE_CHECKING:
    from dispatch_service.core.settings.email import EmailSettings
    from dispatch_service.infra.email import EmailProvider

logger = get_logger(__name__)

_NOTIFICATION_EMAIL = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2563eb;">{{ title }}</h2>
  <p style="font-size: 16px; line-height: 1.5;">{{ body }}</p>
  {%- if action_url %}
  <div style="margin-top: 20px;">
    <a href="{{ action_url }}" style="background-color: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
      Take Action
    </a>
  </div>
  {%- endif %}
  <hr style="margin: 30px 0; border: none; border-top: 1px solid #e5e7eb;">
  <p style="color: #6b7280; font-size: 14px;">
    This is an automated notification from {{ organization }}.
    You can manage your notification preferences in your account settings.
  </p>
</div>
"""


class EmailComposer:
    """Builds the subject line and HTML body of a notification email.

    Rendering uses a sandboxed Jinja2 environment with autoescaping, so
    titles and bodies coming from business workflows cannot inject markup.
    """

    def __init__(self, subject_prefix: str, organization_name: str) -> None:
        self.subject_prefix = subject_prefix
        self.organization_name = organization_name
        self._env = SandboxedEnvironment(
            autoescape=select_autoescape(default_for_string=True, default=True),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._template = self._env.from_string(_NOTIFICATION_EMAIL)

    @classmethod
    def from_settings(cls, settings: EmailSettings) -> EmailComposer:
        return cls(settings.subject_prefix, settings.organization_name)

    def subject(self, title: str) -> str:
        return f"{self.subject_prefix}: {title}"

    def render(self, title: str, body: str, action_url: str | None = None) -> str:
        return self._template.render(
            title=title,
            body=body,
            action_url=action_url,
            organization=self.organization_name,
        )


class ProviderEmailSender:
    """``EmailSender`` backed by an ``EmailProvider`` (console or SMTP).

    The provider never raises; a failed ``EmailDeliveryResult`` is turned
    into ``EmailDeliveryError`` here.
    """

    def __init__(self, provider: EmailProvider, settings: EmailSettings) -> None:
        self._provider = provider
        self._settings = settings

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        message = EmailMessage(
            to=[to_address],
            subject=subject,
            body_html=html_body,
            from_email=str(self._settings.default_from_email),
            from_name=self._settings.default_from_name,
        )
        result = await self._provider.send(message)
        if not result.success:
            logger.warning(
                "Email provider reported failure",
                extra={"provider": result.provider, "error_code": result.error_code, "error": result.error},
            )
            raise EmailDeliveryError(
                result.error or "Email delivery failed",
                error_code=result.error_code,
                recipient=to_address,
            )

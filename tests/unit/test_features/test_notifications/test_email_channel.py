"""Unit tests for email composition and the provider-backed sender."""

from __future__ import annotations

import pytest

from dispatch_service.core.settings import EmailSettings
from dispatch_service.features.notifications.channels import EmailComposer, EmailSender, ProviderEmailSender
from dispatch_service.features.notifications.exceptions import EmailDeliveryError
from dispatch_service.infra.email import BaseEmailProvider, ConsoleProvider, EmailDeliveryResult, create_email_provider


class RejectingProvider(BaseEmailProvider):
    """Provider whose server rejects every message."""

    @property
    def provider_name(self) -> str:
        return "rejecting"

    async def _do_send(self, message):
        return EmailDeliveryResult.failed(
            self.provider_name, "Mailbox unavailable", "RECIPIENTS_REFUSED", recipients_rejected=list(message.to)
        )


class ExplodingProvider(RejectingProvider):
    async def _do_send(self, message):
        raise ConnectionRefusedError("connection refused")


@pytest.fixture
def email_settings() -> EmailSettings:
    return EmailSettings(
        backend="console",
        default_from_email="clinic@example.com",
        default_from_name="Quitline",
        subject_prefix="Quitline Alert",
        organization_name="Quitline Telehealth Services",
    )


@pytest.mark.unit
class TestEmailComposer:
    """Subject and HTML rendering."""

    def test_subject_uses_prefix(self, composer):
        assert composer.subject("New prescription") == "Quitline Alert: New prescription"

    def test_render_includes_content_and_footer(self, composer):
        html = composer.render("New prescription", "Dr. Lee issued a prescription.", "/prescriptions/42")

        assert "<h2" in html
        assert "New prescription" in html
        assert "Dr. Lee issued a prescription." in html
        assert 'href="/prescriptions/42"' in html
        assert "Take Action" in html
        assert "This is an automated notification from Quitline Telehealth Services." in html

    def test_render_without_action_url_has_no_button(self, composer):
        html = composer.render("Reminder", "Appointment tomorrow")

        assert "Take Action" not in html
        assert "href" not in html

    def test_render_escapes_markup(self, composer):
        html = composer.render("<script>alert(1)</script>", "Tom & Jerry")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "Tom &amp; Jerry" in html

    def test_from_settings(self, email_settings):
        composer = EmailComposer.from_settings(email_settings)

        assert composer.subject_prefix == "Quitline Alert"
        assert composer.organization_name == "Quitline Telehealth Services"


@pytest.mark.unit
class TestProviderEmailSender:
    """ProviderEmailSender over real and failing providers."""

    @pytest.mark.asyncio
    async def test_console_provider_records_message(self, email_settings):
        provider = ConsoleProvider(email_settings)
        sender = ProviderEmailSender(provider, email_settings)

        await sender.send("patient@example.com", "Quitline Alert: Hi", "<p>Hi</p>")

        assert isinstance(sender, EmailSender)
        message = provider.outbox[-1]
        assert message.to == ["patient@example.com"]
        assert message.subject == "Quitline Alert: Hi"
        assert message.body_html == "<p>Hi</p>"
        assert message.from_email == "clinic@example.com"
        assert message.from_name == "Quitline"

    @pytest.mark.asyncio
    async def test_provider_failure_raises_delivery_error(self, email_settings):
        sender = ProviderEmailSender(RejectingProvider(email_settings), email_settings)

        with pytest.raises(EmailDeliveryError) as exc_info:
            await sender.send("patient@example.com", "Subject", "<p>x</p>")

        assert exc_info.value.error_code == "RECIPIENTS_REFUSED"
        assert exc_info.value.recipient == "patient@example.com"

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_raises_delivery_error(self, email_settings):
        sender = ProviderEmailSender(ExplodingProvider(email_settings), email_settings)

        with pytest.raises(EmailDeliveryError) as exc_info:
            await sender.send("patient@example.com", "Subject", "<p>x</p>")

        assert exc_info.value.error_code == "UNEXPECTED_ERROR"


@pytest.mark.unit
class TestCreateEmailProvider:
    """Provider factory."""

    def test_console_backend(self, email_settings):
        provider = create_email_provider(email_settings)

        assert provider.provider_name == "console"

    def test_smtp_backend(self):
        settings = EmailSettings(backend="smtp", smtp_host="smtp.example.com")

        provider = create_email_provider(settings)

        assert provider.provider_name == "smtp"

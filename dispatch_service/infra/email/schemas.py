"""Email message model handed to providers."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field


class EmailMessage(BaseModel):
    """A complete email message ready for sending.

    Example:
        message = EmailMessage(
            to=["user@example.com"],
            subject="Alert: New prescription",
            body_html="<h2>New prescription</h2>",
        )
    """

    to: list[EmailStr] = Field(
        min_length=1,
        description="Primary recipients",
    )
    subject: str = Field(
        min_length=1,
        max_length=998,
        description="Subject line",
    )
    body_html: str | None = Field(
        default=None,
        description="HTML body",
    )
    body_text: str | None = Field(
        default=None,
        description="Plain-text alternative body",
    )
    from_email: EmailStr | None = Field(
        default=None,
        description="Sender address; provider default when omitted",
    )
    from_name: str | None = Field(
        default=None,
        max_length=100,
        description="Sender display name",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra MIME headers",
    )

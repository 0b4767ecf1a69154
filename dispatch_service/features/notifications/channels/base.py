"""Sender protocols for the external delivery channels."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from dispatch_service.core.delivery import SendOutcome, SendResult

if TYPE_CHECKING:
    from collections.abc import Mapping


@runtime_checkable
class EmailSender(Protocol):
    """Sends one composed email.

    Raises on any failure; the caller treats every error as terminal for
    that attempt.
    """

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        """Send an HTML email to a single recipient."""
        ...


@runtime_checkable
class PushSender(Protocol):
    """Sends one push notification to one device token.

    Provider errors are never raised: they are classified into a
    ``SendResult`` so the retry executor can decide what to do next.
    """

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        """Deliver to ``token`` and classify the outcome."""
        ...

    async def send_to_topic(
        self,
        topic: str,
        title: str,
        body: str,
        data: Mapping[str, str],
        image_url: str | None = None,
    ) -> SendResult:
        """Broadcast to every device subscribed to ``topic``."""
        ...

    async def health_check(self) -> bool:
        """Whether the provider accepts this sender's credentials."""
        ...


__all__ = ["EmailSender", "PushSender", "SendOutcome", "SendResult"]

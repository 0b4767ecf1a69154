"""Outcome of a single delivery attempt.

Shared by the channel senders that produce it and the retry executor that
decides, from the outcome alone, whether another attempt is worth making.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SendOutcome(StrEnum):
    """Classification of one send attempt."""

    DELIVERED = "delivered"
    # Permanent: the provider says the token will never work again
    INVALID_TOKEN = "invalid_token"
    # Anything else: network errors, throttling, provider 5xx
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True, slots=True)
class SendResult:
    """Result of one send attempt.

    Attributes:
        outcome: Attempt classification.
        reason: Provider error code or message for failed attempts.
    """

    outcome: SendOutcome
    reason: str | None = None

    @classmethod
    def delivered(cls) -> SendResult:
        return cls(SendOutcome.DELIVERED)

    @classmethod
    def invalid_token(cls, reason: str | None = None) -> SendResult:
        return cls(SendOutcome.INVALID_TOKEN, reason)

    @classmethod
    def transient(cls, reason: str | None = None) -> SendResult:
        return cls(SendOutcome.TRANSIENT_FAILURE, reason)

    @property
    def is_delivered(self) -> bool:
        return self.outcome is SendOutcome.DELIVERED

    @property
    def is_invalid(self) -> bool:
        return self.outcome is SendOutcome.INVALID_TOKEN

    @property
    def is_final(self) -> bool:
        """Delivered and invalid-token outcomes end the retry loop."""
        return self.outcome is not SendOutcome.TRANSIENT_FAILURE

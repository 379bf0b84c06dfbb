"""Notifier contract shared by all delivery adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class NotifyOutcome:
    """Result of a single delivery attempt."""

    delivered: bool
    reason: str | None = None
    message_id: str | None = None

    @classmethod
    def ok(cls, message_id: str | None = None) -> "NotifyOutcome":
        return cls(delivered=True, message_id=message_id)

    @classmethod
    def failed(cls, reason: str) -> "NotifyOutcome":
        return cls(delivered=False, reason=reason)


@runtime_checkable
class Notifier(Protocol):
    """Best-effort delivery of a text message to a phone number or email.

    Implementations may raise
    :class:`~saleengine.domain.errors.ExternalServiceError`; the dispatcher
    converts it into a failed outcome.
    """

    def notify(self, contact: str, message: str) -> NotifyOutcome:
        ...

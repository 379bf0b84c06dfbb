"""Post-commit notification dispatch with per-recipient failure isolation.

A dispatcher is created once per process around the configured
:class:`~saleengine.infrastructure.notifications.Notifier` and shared by all
services. Services only hand it work after their transaction has committed,
and no delivery problem ever propagates back into them.
"""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field

from saleengine.domain.errors import ExternalServiceError
from saleengine.infrastructure.notifications import Notifier
from saleengine.infrastructure.observability import (
    get_logger,
    log_context,
    log_exception,
    record_notification,
)

_logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    """A message for one recipient."""

    user_id: str
    contact: str | None
    message: str
    kind: str


@dataclass(frozen=True)
class NotificationResult:
    user_id: str
    contact: str | None
    delivered: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass
class NotificationBatchResult:
    """Per-recipient outcomes of a batch send."""

    results: list[NotificationResult] = field(default_factory=list)

    @property
    def delivered_count(self) -> int:
        return sum(1 for result in self.results if result.delivered)

    @property
    def failed(self) -> list[NotificationResult]:
        return [result for result in self.results if not result.delivered]

    def to_dict(self) -> dict[str, object]:
        return {
            "delivered": self.delivered_count,
            "failed": len(self.failed),
            "results": [result.to_dict() for result in self.results],
        }


class NotificationDispatcher:
    """Deliver notifications without ever failing the caller."""

    def __init__(self, notifier: Notifier, *, max_workers: int = 4) -> None:
        self._notifier = notifier
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notify"
        )

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def send(self, notification: Notification) -> NotificationResult:
        """Deliver one notification and report the outcome."""
        with log_context(user_id=notification.user_id, kind=notification.kind):
            if not notification.contact:
                result = NotificationResult(
                    notification.user_id, None, False, "no contact method"
                )
            else:
                result = self._deliver(notification)
        record_notification(
            "delivered" if result.delivered else "failed", notification.kind
        )
        return result

    def _deliver(self, notification: Notification) -> NotificationResult:
        contact = notification.contact
        try:
            outcome = self._notifier.notify(contact, notification.message)
        except ExternalServiceError as exc:
            _logger.warning("Notification failed: %s", exc)
            return NotificationResult(notification.user_id, contact, False, str(exc))
        except Exception as exc:
            log_exception(_logger, "Notifier raised unexpectedly", exc)
            return NotificationResult(notification.user_id, contact, False, str(exc))
        if not outcome.delivered:
            _logger.warning("Notification not delivered: %s", outcome.reason)
        return NotificationResult(
            notification.user_id, contact, outcome.delivered, outcome.reason
        )

    def send_batch(self, notifications: Iterable[Notification]) -> NotificationBatchResult:
        """Deliver a batch concurrently; results keep the input order."""
        return NotificationBatchResult(
            results=list(self._executor.map(self.send, notifications))
        )

    def send_in_background(self, notification: Notification) -> Future[NotificationResult]:
        """Queue a notification and return immediately."""
        return self._executor.submit(self.send, notification)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

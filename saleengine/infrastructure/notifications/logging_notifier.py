from __future__ import annotations

from saleengine.infrastructure.observability import get_logger

from .base import NotifyOutcome

_logger = get_logger(__name__)


class LoggingNotifier:
    """Notifier that only writes messages to the log.

    Used when no SMS provider is configured, so the engine keeps running
    without credentials.
    """

    def notify(self, contact: str, message: str) -> NotifyOutcome:
        _logger.info("Notification to %s: %s", contact, message)
        return NotifyOutcome.ok()

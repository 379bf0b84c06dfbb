"""Notifier adapters for SMS/email delivery.

The engine depends only on :class:`Notifier`; :func:`build_notifier` picks the
adapter named in the ``notifier`` section of ``config.json``.
"""

from __future__ import annotations

import os
from typing import Any, Mapping

from saleengine.infrastructure.observability import get_logger

from .base import Notifier, NotifyOutcome
from .logging_notifier import LoggingNotifier
from .sms import DEFAULT_API_BASE_URL, SmsNotifier

AUTH_TOKEN_ENV_VAR = "SALEENGINE_TWILIO_AUTH_TOKEN"

_logger = get_logger(__name__)


def build_notifier(settings: Mapping[str, Any] | None = None) -> Notifier:
    """Construct the process-wide notifier from configuration.

    Falls back to :class:`LoggingNotifier` when the SMS backend lacks
    credentials.
    """
    settings = settings or {}
    backend = str(settings.get("backend", "log")).lower()
    if backend != "sms":
        return LoggingNotifier()

    auth_token = os.environ.get(AUTH_TOKEN_ENV_VAR) or settings.get("auth_token")
    account_sid = settings.get("account_sid")
    from_number = settings.get("from_number")
    if not (auth_token and account_sid and from_number):
        _logger.warning("SMS credentials missing - notifications will only be logged")
        return LoggingNotifier()
    return SmsNotifier(
        account_sid=str(account_sid),
        auth_token=str(auth_token),
        from_number=str(from_number),
        base_url=str(settings.get("base_url") or DEFAULT_API_BASE_URL),
    )


__all__ = [
    "AUTH_TOKEN_ENV_VAR",
    "LoggingNotifier",
    "Notifier",
    "NotifyOutcome",
    "SmsNotifier",
    "build_notifier",
]

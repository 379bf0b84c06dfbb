"""SMS delivery through a Twilio-compatible REST API."""

from __future__ import annotations

import httpx

from saleengine.domain.errors import ExternalServiceError
from saleengine.infrastructure.observability import get_logger

from .base import NotifyOutcome

DEFAULT_API_BASE_URL = "https://api.twilio.com"


class SmsNotifier:
    """Send SMS messages with a single shared :class:`httpx.Client`.

    Only contacts that look like phone numbers are sent; email contacts are
    reported as failed so the caller can see they were skipped.
    """

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            auth=(account_sid, auth_token), timeout=timeout
        )
        self._logger = get_logger(__name__)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    def notify(self, contact: str, message: str) -> NotifyOutcome:
        if "@" in contact:
            return NotifyOutcome.failed("contact is not a phone number")
        try:
            response = self._client.post(
                self.messages_url,
                data={"To": contact, "From": self.from_number, "Body": message},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"SMS provider rejected message: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"SMS provider unreachable: {exc}") from exc

        payload = response.json()
        self._logger.debug("SMS accepted by provider: %s", payload.get("sid"))
        return NotifyOutcome.ok(message_id=payload.get("sid"))

    def close(self) -> None:
        self._client.close()

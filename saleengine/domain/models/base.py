"""Shared helpers for building domain models from store rows."""

from __future__ import annotations

from datetime import datetime, timezone

from saleengine.domain.errors import StoreError


def parse_datetime(value: object) -> datetime | None:
    """Parse a stored ISO-8601 value into an aware UTC datetime.

    ``None`` and the empty string mean "not set". Anything else that is not a
    valid timestamp raises :class:`StoreError`, since reading it as "not set"
    would turn a timed auction into an open-ended one.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise StoreError(f"Malformed timestamp in store: {value!r}") from exc
        return as_utc(parsed).astimezone(timezone.utc)
    raise StoreError(f"Unsupported timestamp value in store: {value!r}")


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored values."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

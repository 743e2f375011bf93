"""UTC helpers for wire timestamps and sync watermarks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

UTC = timezone.utc

_DATETIME = TypeAdapter(datetime)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Read naive values (SQLite hands them back) as UTC; convert aware ones."""

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse a remote timestamp into an aware UTC datetime.

    Blank or malformed input yields ``None`` rather than an error; the remote
    is allowed to send junk in optional date fields.
    """

    if not value or not value.strip():
        return None
    try:
        return ensure_utc(_DATETIME.validate_python(value.strip()))
    except ValidationError:
        return None


def to_rfc3339_utc(value: Optional[Union[datetime, str]]) -> Optional[str]:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ``; second precision is what since-filters compare."""

    if isinstance(value, str):
        value = parse_rfc3339(value)
    if value is None:
        return None
    return ensure_utc(value).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def synced_within(moment: Optional[datetime], days: int, now: Optional[datetime] = None) -> bool:
    """Whether ``moment`` lies inside the trailing ``days`` window ending at ``now``."""

    if moment is None:
        return False
    now = ensure_utc(now) if now is not None else utc_now()
    return ensure_utc(moment) >= now - timedelta(days=days)


__all__ = [
    "UTC",
    "ensure_utc",
    "parse_rfc3339",
    "synced_within",
    "to_rfc3339_utc",
    "utc_now",
]

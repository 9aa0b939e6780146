# Overview: Timestamp helpers. All stored datetimes are UTC-naive.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hours_ago(hours: int) -> datetime:
    """Cutoff for sweeps such as stale PENDING order expiry."""
    return utcnow() - timedelta(hours=hours)


def _strip_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an admin-supplied ISO-8601 timestamp (e.g. an entitlement expiry).

    Blank -> None. Naive values are taken as UTC; "Z" and offsets are converted.
    Raises ValueError on malformed input.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("expected an ISO-8601 string")
    if not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return _strip_tz(datetime.fromisoformat(raw))


def from_epoch_seconds(value: Optional[int]) -> Optional[datetime]:
    # Processor objects carry unix seconds
    if value is None:
        return None
    return _strip_tz(datetime.fromtimestamp(int(value), tz=timezone.utc))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as second-precision ISO-8601 with a trailing 'Z'."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

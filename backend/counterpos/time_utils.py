"""
Timestamps are stored as naive UTC datetimes and serialized as ISO-8601 with
a trailing 'Z'. Everything that crosses the API or a backup file goes through
these helpers.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], field: str = "datetime") -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a naive UTC datetime.

    Blank input gives None. Naive values are taken as UTC; 'Z' and numeric
    offsets are converted. Raises ValueError naming `field` on bad input.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        return _as_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        raise ValueError(f"{field} must be an ISO-8601 datetime, got {value!r}")


def parse_range_bound(value: Optional[str], field: str, *, end: bool = False) -> Optional[datetime]:
    """
    Parse a report/list filter bound.

    A bare date ("2024-05-01") covers the whole day: as a start bound it means
    midnight, as an end bound it means the last instant of that day.
    """
    if value is None or not str(value).strip():
        return None
    text = str(value).strip()
    if len(text) == 10:
        try:
            day = date.fromisoformat(text)
        except ValueError:
            raise ValueError(f"{field} must be an ISO-8601 date or datetime, got {value!r}")
        start = datetime.combine(day, time.min)
        return start + timedelta(days=1, microseconds=-1) if end else start
    return parse_iso_datetime(text, field)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to second precision with a 'Z' suffix. Naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

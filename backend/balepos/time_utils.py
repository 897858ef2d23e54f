from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_local(dt: datetime, tz_name: str = "UTC") -> datetime:
    """UTC-naive datetime -> naive wall-clock time in tz_name."""
    return dt.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_to_utc(dt: datetime, tz_name: str = "UTC") -> datetime:
    """Naive wall-clock time in tz_name -> UTC-naive datetime."""
    return dt.replace(tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc).replace(tzinfo=None)


def format_local_stamp(dt: datetime, tz_name: str = "UTC") -> str:
    """
    Human-readable 'MM/DD/YYYY HH:MM AM' stamp used in audit log lines.

    dt is UTC-naive; the stamp shows the wall clock in tz_name.
    """
    return to_local(dt, tz_name).strftime("%m/%d/%Y %I:%M %p")


def parse_local_stamp(value: str) -> Optional[datetime]:
    """Inverse of format_local_stamp, still in wall-clock time."""
    try:
        return datetime.strptime(value.strip(), "%m/%d/%Y %I:%M %p")
    except ValueError:
        return None


def session_date(dt: datetime) -> str:
    """Calendar date label for live sessions (en-US style, e.g. 3/7/2026)."""
    return f"{dt.month}/{dt.day}/{dt.year}"


def parse_session_date(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value.strip(), "%m/%d/%Y")
    except ValueError:
        return None

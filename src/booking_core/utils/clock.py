"""Time-of-day and wall-clock helpers.

Times of day travel as zero-padded "HH:MM" strings; arithmetic happens in
minutes since midnight. Stored instants are naive UTC datetimes.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")

MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight.

    Raises:
        ValueError: If the value is not a valid time of day.
    """
    match = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    """Convert minutes since midnight back to "HH:MM"."""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a time of day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_utc(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    """Interpret a wall-clock date + "HH:MM" in `tz` and return naive UTC."""
    minutes = parse_hhmm(hhmm)
    local = datetime.combine(day, time(minutes // 60, minutes % 60), tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(tz: ZoneInfo, now: Optional[datetime] = None) -> date:
    """Calendar date "today" in `tz` for a naive UTC `now`."""
    instant = (now or utcnow()).replace(tzinfo=timezone.utc)
    return instant.astimezone(tz).date()

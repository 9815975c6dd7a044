"""
Date Normalizer — turns instants into local calendar-day keys.

A day key is the observer's local calendar date as ``YYYY-MM-DD``. It is
computed from a timezone-converted datetime, never by slicing a UTC string,
so a session started at 23:30 local lands on the local day even when UTC has
already rolled over.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Tuple, Union

Instant = Union[int, float, datetime, date, str]

DAY_KEY_FORMAT = "%Y-%m-%d"


def to_local_datetime(instant: Optional[Instant] = None,
                      tz: Optional[tzinfo] = None) -> datetime:
    """
    Normalize an instant to a naive wall-clock datetime in the observer's zone.

    Accepts epoch milliseconds, aware or naive datetimes, dates, and ISO
    strings (a bare day key means local midnight). Naive datetimes are taken
    as local already. ``tz`` overrides the system zone.
    """
    if instant is None:
        now = datetime.now(tz) if tz else datetime.now()
        return now.replace(tzinfo=None)
    if isinstance(instant, datetime):
        if instant.tzinfo is None:
            return instant
        return instant.astimezone(tz).replace(tzinfo=None)
    if isinstance(instant, date):
        return datetime.combine(instant, time.min)
    if isinstance(instant, (int, float)):
        dt = datetime.fromtimestamp(instant / 1000.0, tz)
        return dt.replace(tzinfo=None)
    if isinstance(instant, str):
        if len(instant) == 10:
            return parse_day_key(instant)
        return to_local_datetime(datetime.fromisoformat(instant.replace("Z", "+00:00")), tz)
    raise TypeError(f"Unsupported instant type: {type(instant).__name__}")


def day_key(instant: Optional[Instant] = None, tz: Optional[tzinfo] = None) -> str:
    """Local calendar-day key for an instant (default: now)."""
    return to_local_datetime(instant, tz).date().isoformat()


def today(tz: Optional[tzinfo] = None) -> str:
    return day_key(None, tz)


def yesterday(tz: Optional[tzinfo] = None) -> str:
    return subtract_days(to_local_datetime(None, tz), 1)


def subtract_days(base: Instant, days: int) -> str:
    """Day key ``days`` calendar days before ``base``."""
    result = to_local_datetime(base).date() - timedelta(days=days)
    return result.isoformat()


def parse_day_key(key: str) -> datetime:
    """Local midnight of a ``YYYY-MM-DD`` key."""
    return datetime.strptime(key, DAY_KEY_FORMAT)


def week_bounds(instant: Optional[Instant] = None) -> Tuple[datetime, datetime]:
    """Monday 00:00 through Sunday 23:59:59.999999 of the local week."""
    day = to_local_datetime(instant).date()
    monday = day - timedelta(days=day.weekday())
    return (
        datetime.combine(monday, time.min),
        datetime.combine(monday + timedelta(days=6), time.max),
    )


def format_clock(seconds: float) -> str:
    """HH:MM:SS of the absolute value (the sign is left to the caller)."""
    total = int(abs(seconds))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"

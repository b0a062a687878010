"""
Time-interval helpers for the boat club.

All datetimes handled by the app are naive local datetimes in the club's
timezone (CLUB_TIMEZONE, default Europe/Berlin), the same convention the
reservation calendar uses. Aware values coming from clients are converted
on the way in.
"""

import os
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

CLUB_TZ = ZoneInfo(os.environ.get("CLUB_TIMEZONE", "Europe/Berlin"))

MS_PER_HOUR = 3_600_000
MS_PER_MINUTE = 60_000


def now_local() -> datetime:
    """Current naive datetime in club time (handles DST automatically)."""
    return datetime.now(CLUB_TZ).replace(tzinfo=None)


def to_local(dt: datetime) -> datetime:
    """Drop tzinfo after converting to club time. Naive values pass through."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(CLUB_TZ).replace(tzinfo=None)


def parse_datetime(text: str) -> datetime:
    """Parse an ISO-8601 string (a trailing 'Z' is accepted). Raises ValueError."""
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Missing date/time value.")
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_local(datetime.fromisoformat(value))


# ---------------------------------------------------------------------------
# Interval arithmetic
# ---------------------------------------------------------------------------

def overlaps(a_start: datetime, a_end: datetime,
             b_start: datetime, b_end: datetime) -> bool:
    """
    True if the closed intervals [a_start, a_end] and [b_start, b_end] intersect.
    Touching endpoints count: a booking ending at 11:00 collides with one
    starting at 11:00.
    """
    return a_start <= b_end and a_end >= b_start


def duration_ms(start: datetime, end: datetime) -> int:
    """Milliseconds from start to end. Negative if end is before start."""
    return (end - start) // timedelta(milliseconds=1)


def format_duration(ms: int) -> str:
    """
    Humanize a millisecond duration as hours and minutes, rounded to the minute.
      72_000_000 -> '20h'
       5_400_000 -> '1h 30m'
       2_700_000 -> '45m'
    """
    sign = "-" if ms < 0 else ""
    minutes = round(abs(ms) / MS_PER_MINUTE)
    hours, minutes = divmod(minutes, 60)
    if hours and minutes:
        return f"{sign}{hours}h {minutes}m"
    if hours:
        return f"{sign}{hours}h"
    if minutes:
        return f"{sign}{minutes}m"
    return "0m"

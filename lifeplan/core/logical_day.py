"""Logical day resolver — pure calendar arithmetic.

A user's "logical day" is the calendar date they experience in their own
timezone. Every caller that needs "today" (instance materialization, streaks,
the end-of-day job) goes through this module, always passing the instant in
explicitly.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@lru_cache(maxsize=256)
def get_zone(timezone: str | None) -> ZoneInfo:
    """Return the ZoneInfo for an IANA key, falling back to UTC.

    Bad profile data must never block the caller, so an empty, malformed or
    unknown key degrades to UTC instead of raising.
    """
    if not timezone or not isinstance(timezone, str):
        return UTC
    try:
        return ZoneInfo(timezone.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Invalid timezone %r, falling back to UTC", timezone)
        return UTC


def is_valid_timezone(timezone: str | None) -> bool:
    """Check whether a string names a loadable IANA zone."""
    if not timezone or not isinstance(timezone, str):
        return False
    try:
        ZoneInfo(timezone.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def resolve_logical_date(instant: datetime, timezone: str | None) -> date:
    """Return the calendar date *instant* falls on in *timezone*.

    Naive instants are read as UTC.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(get_zone(timezone)).date()


def format_logical_date(day: date) -> str:
    """Format a logical date as YYYY-MM-DD."""
    if isinstance(day, datetime):
        day = day.date()
    return day.isoformat()


def parse_logical_date(raw: str) -> date:
    """Parse a YYYY-MM-DD key.

    Raises ValueError on anything else, including compact ISO forms.
    """
    if not isinstance(raw, str) or not _DATE_RE.match(raw.strip()):
        raise ValueError(f"Expected a YYYY-MM-DD date, got {raw!r}")
    return date.fromisoformat(raw.strip())


def _parse_local_time(local_time: str | time) -> time:
    if isinstance(local_time, time):
        return local_time.replace(tzinfo=None)
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(local_time.strip(), fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Expected HH:MM or HH:MM:SS, got {local_time!r}")


def zoned_instant(
    logical_date: date,
    local_time: str | time,
    timezone: str | None,
) -> datetime:
    """Convert a wall-clock time on a logical date into an absolute UTC instant.

    DST policy (fold=0 throughout):
      * ambiguous wall times (clocks fall back) resolve to the earlier instant;
      * nonexistent wall times (clocks spring forward) use the offset in force
        before the transition, which lands the same distance past the gap
        (02:30 in a one-hour gap becomes 03:30 local).

    Never raises for DST reasons.
    """
    zone = get_zone(timezone)
    naive = datetime.combine(logical_date, _parse_local_time(local_time))
    instant = naive.replace(tzinfo=zone, fold=0).astimezone(UTC)

    round_trip = instant.astimezone(zone).replace(tzinfo=None)
    if round_trip != naive:
        logger.debug(
            "Wall time %s does not exist in %s, scheduled at %s local",
            naive.isoformat(), zone.key, round_trip.isoformat(),
        )
    return instant


def logical_day_bounds(logical_date: date, timezone: str | None) -> tuple[datetime, datetime]:
    """Return the half-open [start, end) UTC instants of a local day."""
    start = zoned_instant(logical_date, time(0, 0), timezone)
    end = zoned_instant(logical_date + timedelta(days=1), time(0, 0), timezone)
    return start, end


def days_in_range(start: date, end: date) -> list[date]:
    """Return every date from start to end inclusive (empty if end < start)."""
    span = (end - start).days
    return [start + timedelta(days=offset) for offset in range(span + 1)]


def coerce_logical_date(value: date | str) -> date:
    """Accept either a date or a YYYY-MM-DD key."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_logical_date(value)

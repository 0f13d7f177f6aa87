"""Reset windows for water (daily) and sun (weekly).

Both reset at 06:00 local time; the week starts on Monday. An instant
exactly on a boundary belongs to the window that starts there.
Without an explicit zone the system zone is used; boundaries are wall-clock
06:00, so a window that spans a DST change is 23 or 25 hours long.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from dateutil import tz as dateutil_tz

from trunk.constants import RESET_HOUR


def _localize(now: Optional[datetime], tz: Optional[tzinfo]) -> datetime:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if tz is None:
        # System zone with per-date DST offsets
        tz = dateutil_tz.tzlocal()
    return now.astimezone(tz)


def day_window_start(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Most recent daily reset: 06:00 today, or yesterday if before 06:00."""
    local = _localize(now, tz)
    reset = local.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
    if local < reset:
        reset -= timedelta(days=1)
    return reset


def week_window_start(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Most recent weekly reset: Monday 06:00."""
    local = _localize(now, tz)
    reset = local.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
    reset -= timedelta(days=local.isoweekday() - 1)
    if local < reset:
        reset -= timedelta(days=7)
    return reset


def next_day_reset(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    return day_window_start(now, tz) + timedelta(days=1)


def next_week_reset(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    return week_window_start(now, tz) + timedelta(days=7)

"""
Bucket Alignment

Computes the calendar-aligned start of the "current" candlestick bucket for a
timeframe at process start. Alignment uses wall-clock minutes/hours in a single
reference zone (``ALIGN_TIMEZONE``, UTC by default).
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

ONE_MINUTE = timedelta(minutes=1)
ONE_HOUR = timedelta(hours=1)

MINUTE_ALIGNED = (5, 10, 15, 30)
HOUR_ALIGNED = (240, 360, 720)

SUPPORTED_MINUTES = frozenset((1, 60, 120, 1440) + MINUTE_ALIGNED + HOUR_ALIGNED)


def is_supported(minutes: int) -> bool:
    return minutes in SUPPORTED_MINUTES


def _step_back(start: datetime, step: timedelta, tz: tzinfo, aligned) -> datetime:
    """Step backward in absolute time until the wall clock satisfies `aligned`"""
    current = start
    while not aligned(current):
        current = (current.astimezone(timezone.utc) - step).astimezone(tz)
    return current


def aligned_start(now: datetime, minutes: int, tz: Optional[tzinfo] = None) -> datetime:
    """
    Start of the bucket considered current at `now` for a `minutes` timeframe.

    Rules:
        1              -> next whole minute after `now`
        5/10/15/30     -> floor to minute, back off until minute % minutes == 0
        60             -> floor to hour
        120            -> floor to hour, back off to an even hour, then +2h
        240/360/720    -> floor to hour, back off until hour % (minutes/60) == 0
        1440           -> start of the calendar day
        anything else  -> `now` unchanged

    Args:
        now: Reference instant (naive values are read as UTC)
        minutes: Timeframe duration in minutes
        tz: Reference zone for wall-clock alignment (default UTC)

    Returns:
        Aware datetime in UTC
    """
    tz = tz or timezone.utc
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz)

    last_minute = local.replace(second=0, microsecond=0)
    last_hour = local.replace(minute=0, second=0, microsecond=0)

    if minutes == 1:
        start = last_minute + ONE_MINUTE
    elif minutes in MINUTE_ALIGNED:
        start = _step_back(last_minute, ONE_MINUTE, tz, lambda t: t.minute % minutes == 0)
    elif minutes == 60:
        start = last_hour
    elif minutes == 120:
        start = _step_back(last_hour, ONE_HOUR, tz, lambda t: t.hour % 2 == 0) + 2 * ONE_HOUR
    elif minutes in HOUR_ALIGNED:
        hours = minutes // 60
        start = _step_back(last_hour, ONE_HOUR, tz, lambda t: t.hour % hours == 0)
    elif minutes == 1440:
        start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        return now.astimezone(timezone.utc)

    return start.astimezone(timezone.utc)

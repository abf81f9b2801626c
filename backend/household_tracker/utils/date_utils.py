# backend/household_tracker/utils/date_utils.py
"""
Date utility functions for the Household Portfolio Tracker.

All helpers work on timezone-aware datetimes. Calendar boundaries
(start of day, start of hour, Monday week start) are computed in the
timezone the datetime already carries, so callers convert to the
configured local timezone first.

Usage:
    from household_tracker.utils.date_utils import start_of_day, week_start

    midnight = start_of_day(now)
    monday = week_start(now.date())
"""

from datetime import date, datetime, timedelta, timezone, tzinfo


def ensure_aware(value: datetime, tz: tzinfo) -> datetime:
    """
    Attach tz to a naive datetime; convert an aware one into tz.

    Args:
        value: Datetime that may or may not carry tzinfo
        tz: Target timezone

    Returns:
        Aware datetime expressed in tz
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def start_of_day(value: datetime) -> datetime:
    """Midnight of the calendar day value falls on."""
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_hour(value: datetime) -> datetime:
    """Value with minutes, seconds and microseconds zeroed."""
    return value.replace(minute=0, second=0, microsecond=0)


def week_start(d: date) -> date:
    """
    Monday of the ISO week containing d.

    Example:
        >>> week_start(date(2024, 1, 4))  # Thursday
        date(2024, 1, 1)
    """
    return d - timedelta(days=d.weekday())


def instant(value: datetime) -> datetime:
    """
    The same moment in UTC.

    Aware datetimes sharing a ZoneInfo compare and subtract by wall-clock
    time and ignore `fold`, so the two 01:30s of a DST fall-back day look
    equal. Order and measure local timestamps through this instead.
    """
    return value.astimezone(timezone.utc)

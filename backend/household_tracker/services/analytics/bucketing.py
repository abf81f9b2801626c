# backend/household_tracker/services/analytics/bucketing.py
"""
Capture-type bucketing and last-value deduplication.

Window rules:

    Window  Eligible capture types    Range floor
    ------  ------------------------  -----------------------------
    1D      HOURLY, DAILY, WEEKLY     start of the current day
    1W      DAILY, WEEKLY             now - 7 days
    1M      DAILY, WEEKLY             now - 1 month
    3M      DAILY, WEEKLY             now - 3 months
    YTD     WEEKLY                    Jan 1 of the current year
    1Y      WEEKLY                    now - 1 year
    ALL     WEEKLY                    epoch

1D buckets by hour. Every other window buckets by day, except HOURLY
events, which always bucket by hour. 1D keeps today's events only; the
other windows stop at midnight because today's value comes from the live
anchor.

Within one bucket and entity the latest event wins.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from dateutil.relativedelta import relativedelta

from household_tracker.services.analytics.types import (
    CaptureType,
    DisplayWindow,
    Granularity,
    TotalValueEvent,
)
from household_tracker.utils.date_utils import instant, start_of_day, start_of_hour

E = TypeVar("E")

ALL_CAPTURE_TYPES = frozenset(CaptureType)
DAILY_AND_WEEKLY = frozenset({CaptureType.DAILY, CaptureType.WEEKLY})
WEEKLY_ONLY = frozenset({CaptureType.WEEKLY})

WINDOW_CAPTURE_TYPES: dict[DisplayWindow, frozenset[CaptureType]] = {
    DisplayWindow.ONE_DAY: ALL_CAPTURE_TYPES,
    DisplayWindow.ONE_WEEK: DAILY_AND_WEEKLY,
    DisplayWindow.ONE_MONTH: DAILY_AND_WEEKLY,
    DisplayWindow.THREE_MONTHS: DAILY_AND_WEEKLY,
    DisplayWindow.YEAR_TO_DATE: WEEKLY_ONLY,
    DisplayWindow.ONE_YEAR: WEEKLY_ONLY,
    DisplayWindow.ALL: WEEKLY_ONLY,
}


@dataclass
class Bucket(Generic[E]):
    """
    One time bucket with the surviving event per entity.

    Attributes:
        start: Bucket start (hour or midnight, local time)
        granularity: HOUR or DAY
        entries: entity key -> latest event in the bucket
    """
    start: datetime
    granularity: Granularity
    entries: dict[Hashable, E] = field(default_factory=dict)


def window_floor(window: DisplayWindow, now: datetime) -> datetime:
    """
    Earliest timestamp a window includes.

    Example:
        >>> window_floor(DisplayWindow.YEAR_TO_DATE, datetime(2024, 5, 3, 10, tzinfo=tz))
        datetime(2024, 1, 1, 0, 0, tzinfo=tz)
    """
    if window == DisplayWindow.ONE_DAY:
        return start_of_day(now)
    if window == DisplayWindow.ONE_WEEK:
        return now - timedelta(days=7)
    if window == DisplayWindow.ONE_MONTH:
        return now - relativedelta(months=1)
    if window == DisplayWindow.THREE_MONTHS:
        return now - relativedelta(months=3)
    if window == DisplayWindow.YEAR_TO_DATE:
        return start_of_day(now).replace(month=1, day=1)
    if window == DisplayWindow.ONE_YEAR:
        return now - relativedelta(years=1)
    return datetime(1970, 1, 1, tzinfo=now.tzinfo)


def in_window(timestamp: datetime, window: DisplayWindow, now: datetime) -> bool:
    """
    Whether a historical event belongs to the window's historical pass.

    1D: today only. Others: floor <= timestamp < start of today.
    """
    today = instant(start_of_day(now))
    moment = instant(timestamp)
    if window == DisplayWindow.ONE_DAY:
        return today <= moment <= instant(now)
    return instant(window_floor(window, now)) <= moment < today


def bucket_start(
        timestamp: datetime,
        window: DisplayWindow,
        capture_type: CaptureType | None = None,
) -> tuple[datetime, Granularity]:
    """Bucket start and granularity for an event."""
    if window == DisplayWindow.ONE_DAY or capture_type == CaptureType.HOURLY:
        return start_of_hour(timestamp), Granularity.HOUR
    return start_of_day(timestamp), Granularity.DAY


def deduplicate_latest(
        events: Iterable[E],
        bucket_key: Callable[[E], tuple[datetime, Granularity]],
        entity_key: Callable[[E], Hashable],
        timestamp_of: Callable[[E], datetime] = lambda event: event.timestamp,
) -> list[Bucket[E]]:
    """
    Keep the latest event per (bucket, entity).

    Buckets are keyed and events compared by UTC instant, so the repeated
    hour of a DST fall-back day forms its own bucket. When two events share
    a timestamp the one seen later wins.

    Args:
        events: Events in any order
        bucket_key: event -> (bucket start, granularity)
        entity_key: event -> entity (username, or (username, ticker))
        timestamp_of: event -> timestamp used for "latest"

    Returns:
        Buckets sorted by start
    """
    buckets: dict[datetime, Bucket[E]] = {}
    for event in events:
        start, granularity = bucket_key(event)
        key = instant(start)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(start=start, granularity=granularity)
        elif granularity == Granularity.HOUR:
            bucket.granularity = Granularity.HOUR

        entity = entity_key(event)
        kept = bucket.entries.get(entity)
        if kept is None or instant(timestamp_of(event)) >= instant(timestamp_of(kept)):
            bucket.entries[entity] = event

    return [buckets[key] for key in sorted(buckets)]


def bucket_total_values(
        events: Iterable[TotalValueEvent],
        window: DisplayWindow,
        now: datetime,
) -> list[Bucket[TotalValueEvent]]:
    """
    Filter snapshots to a window's eligible capture types and range,
    then keep the latest snapshot per user per bucket.
    """
    eligible = WINDOW_CAPTURE_TYPES[window]
    selected = (
        event for event in events
        if event.capture_type in eligible and in_window(event.timestamp, window, now)
    )
    return deduplicate_latest(
        selected,
        bucket_key=lambda event: bucket_start(event.timestamp, window, event.capture_type),
        entity_key=lambda event: event.username,
    )

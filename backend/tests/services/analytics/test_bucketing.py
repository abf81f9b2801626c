# tests/services/analytics/test_bucketing.py
"""
Tests for window floors, capture-type eligibility and last-value deduplication.

Every test runs at Friday 2024-03-15 14:30 America/New_York.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from household_tracker.services.analytics.bucketing import (
    bucket_start,
    bucket_total_values,
    deduplicate_latest,
    in_window,
    window_floor,
)
from household_tracker.services.analytics.types import (
    AssetValues,
    CaptureType,
    DisplayWindow,
    Granularity,
    HoldingEvent,
    TotalValueEvent,
)


def snapshot(tz, when, username, stock, capture=CaptureType.DAILY, cash="0"):
    return TotalValueEvent(
        timestamp=datetime(*when, tzinfo=tz),
        username=username,
        values=AssetValues(stock=Decimal(stock), cash=Decimal(cash)),
        capture_type=capture,
    )


# =============================================================================
# WINDOW RANGE
# =============================================================================

class TestWindowFloor:
    """Tests for window_floor."""

    @pytest.mark.parametrize(
        "window, expected",
        [
            (DisplayWindow.ONE_DAY, (2024, 3, 15, 0, 0)),
            (DisplayWindow.ONE_WEEK, (2024, 3, 8, 14, 30)),
            (DisplayWindow.ONE_MONTH, (2024, 2, 15, 14, 30)),
            (DisplayWindow.THREE_MONTHS, (2023, 12, 15, 14, 30)),
            (DisplayWindow.YEAR_TO_DATE, (2024, 1, 1, 0, 0)),
            (DisplayWindow.ONE_YEAR, (2023, 3, 15, 14, 30)),
            (DisplayWindow.ALL, (1970, 1, 1, 0, 0)),
        ],
    )
    def test_floor_per_window(self, tz, now, window, expected):
        """Should compute the earliest included timestamp for each window."""
        assert window_floor(window, now) == datetime(*expected, tzinfo=tz)

    def test_month_floor_clamps_to_month_end(self, tz):
        """Should clamp calendar arithmetic to the last day of a short month."""
        now = datetime(2024, 3, 31, 12, 0, tzinfo=tz)

        assert window_floor(DisplayWindow.ONE_MONTH, now) == datetime(2024, 2, 29, 12, 0, tzinfo=tz)


class TestInWindow:
    """Tests for in_window."""

    def test_one_day_keeps_today_up_to_now(self, tz, now):
        """Should include today's events up to now and nothing else."""
        assert in_window(datetime(2024, 3, 15, 9, 0, tzinfo=tz), DisplayWindow.ONE_DAY, now)
        assert not in_window(datetime(2024, 3, 14, 23, 59, tzinfo=tz), DisplayWindow.ONE_DAY, now)
        assert not in_window(datetime(2024, 3, 15, 15, 0, tzinfo=tz), DisplayWindow.ONE_DAY, now)

    def test_other_windows_stop_at_midnight(self, tz, now):
        """Should leave today to the live anchor on multi-day windows."""
        assert in_window(datetime(2024, 3, 14, 23, 0, tzinfo=tz), DisplayWindow.ONE_WEEK, now)
        assert not in_window(datetime(2024, 3, 15, 0, 0, tzinfo=tz), DisplayWindow.ONE_WEEK, now)

    def test_respects_floor(self, tz, now):
        """Should exclude events before the window floor."""
        assert not in_window(datetime(2024, 3, 8, 10, 0, tzinfo=tz), DisplayWindow.ONE_WEEK, now)
        assert in_window(datetime(2024, 3, 8, 15, 0, tzinfo=tz), DisplayWindow.ONE_WEEK, now)


class TestBucketStart:
    """Tests for bucket_start."""

    def test_one_day_buckets_by_hour(self, tz):
        """Should align 1D events to the hour."""
        start, granularity = bucket_start(datetime(2024, 3, 15, 9, 47, tzinfo=tz), DisplayWindow.ONE_DAY)

        assert start == datetime(2024, 3, 15, 9, 0, tzinfo=tz)
        assert granularity == Granularity.HOUR

    def test_multi_day_windows_bucket_by_day(self, tz):
        """Should align DAILY events on multi-day windows to midnight."""
        start, granularity = bucket_start(
            datetime(2024, 3, 10, 18, 5, tzinfo=tz), DisplayWindow.ONE_MONTH, CaptureType.DAILY,
        )

        assert start == datetime(2024, 3, 10, tzinfo=tz)
        assert granularity == Granularity.DAY

    def test_hourly_events_always_bucket_by_hour(self, tz):
        """Should keep hourly granularity for HOURLY events on any window."""
        _, granularity = bucket_start(
            datetime(2024, 3, 10, 18, 5, tzinfo=tz), DisplayWindow.ONE_MONTH, CaptureType.HOURLY,
        )

        assert granularity == Granularity.HOUR


# =============================================================================
# DEDUPLICATION
# =============================================================================

class TestDeduplicateLatest:
    """Tests for deduplicate_latest."""

    def test_latest_event_per_entity_wins(self, tz):
        """Should keep the later of two same-bucket events, never their sum."""
        events = [
            HoldingEvent(datetime(2024, 3, 15, 9, 10, tzinfo=tz), "Amy", "CASH", Decimal("100")),
            HoldingEvent(datetime(2024, 3, 15, 9, 40, tzinfo=tz), "Amy", "CASH", Decimal("150")),
        ]

        buckets = deduplicate_latest(
            events,
            bucket_key=lambda e: bucket_start(e.timestamp, DisplayWindow.ONE_DAY),
            entity_key=lambda e: (e.username, e.ticker),
        )

        assert len(buckets) == 1
        assert buckets[0].entries[("Amy", "CASH")].shares == Decimal("150")

    def test_order_of_input_does_not_matter(self, tz):
        """Should pick the latest timestamp even when it arrives first."""
        late = HoldingEvent(datetime(2024, 3, 15, 9, 40, tzinfo=tz), "Amy", "CASH", Decimal("150"))
        early = HoldingEvent(datetime(2024, 3, 15, 9, 10, tzinfo=tz), "Amy", "CASH", Decimal("100"))

        buckets = deduplicate_latest(
            [late, early],
            bucket_key=lambda e: bucket_start(e.timestamp, DisplayWindow.ONE_DAY),
            entity_key=lambda e: (e.username, e.ticker),
        )

        assert buckets[0].entries[("Amy", "CASH")] is late

    def test_equal_timestamps_later_row_wins(self, tz):
        """Should prefer the row seen later when timestamps tie."""
        first = HoldingEvent(datetime(2024, 3, 15, 9, 0, tzinfo=tz), "Amy", "CASH", Decimal("1"))
        second = HoldingEvent(datetime(2024, 3, 15, 9, 0, tzinfo=tz), "Amy", "CASH", Decimal("2"))

        buckets = deduplicate_latest(
            [first, second],
            bucket_key=lambda e: bucket_start(e.timestamp, DisplayWindow.ONE_DAY),
            entity_key=lambda e: (e.username, e.ticker),
        )

        assert buckets[0].entries[("Amy", "CASH")] is second

    def test_buckets_are_sorted(self, tz):
        """Should return buckets in ascending start order."""
        events = [
            HoldingEvent(datetime(2024, 3, 15, 11, 0, tzinfo=tz), "Amy", "CASH", Decimal("3")),
            HoldingEvent(datetime(2024, 3, 15, 9, 0, tzinfo=tz), "Amy", "CASH", Decimal("1")),
        ]

        buckets = deduplicate_latest(
            events,
            bucket_key=lambda e: bucket_start(e.timestamp, DisplayWindow.ONE_DAY),
            entity_key=lambda e: (e.username, e.ticker),
        )

        assert [b.start.hour for b in buckets] == [9, 11]


class TestBucketTotalValues:
    """Tests for bucket_total_values."""

    def test_one_day_uses_every_capture_type_hourly(self, tz, now):
        """Should bucket today's snapshots by hour, one per user."""
        events = [
            snapshot(tz, (2024, 3, 15, 9, 5), "Amy", "100", CaptureType.HOURLY),
            snapshot(tz, (2024, 3, 15, 9, 55), "Amy", "110", CaptureType.HOURLY),
            snapshot(tz, (2024, 3, 15, 10, 0), "Amy", "120", CaptureType.DAILY),
            snapshot(tz, (2024, 3, 14, 10, 0), "Amy", "90", CaptureType.HOURLY),
        ]

        buckets = bucket_total_values(events, DisplayWindow.ONE_DAY, now)

        assert [b.start.hour for b in buckets] == [9, 10]
        assert buckets[0].entries["Amy"].values.stock == Decimal("110")
        assert all(b.granularity == Granularity.HOUR for b in buckets)

    def test_month_ignores_hourly_snapshots(self, tz, now):
        """Should only use DAILY and WEEKLY snapshots on 1M."""
        events = [
            snapshot(tz, (2024, 3, 10, 9, 0), "Amy", "100", CaptureType.HOURLY),
            snapshot(tz, (2024, 3, 10, 18, 0), "Amy", "200", CaptureType.DAILY),
            snapshot(tz, (2024, 3, 11, 18, 0), "Amy", "300", CaptureType.WEEKLY),
        ]

        buckets = bucket_total_values(events, DisplayWindow.ONE_MONTH, now)

        assert [b.entries["Amy"].values.stock for b in buckets] == [Decimal("200"), Decimal("300")]
        assert all(b.granularity == Granularity.DAY for b in buckets)

    def test_long_windows_use_weekly_only(self, tz, now):
        """Should only use WEEKLY snapshots on YTD, 1Y and ALL."""
        events = [
            snapshot(tz, (2024, 2, 5, 18, 0), "Amy", "100", CaptureType.WEEKLY),
            snapshot(tz, (2024, 2, 6, 18, 0), "Amy", "200", CaptureType.DAILY),
            snapshot(tz, (2023, 6, 5, 18, 0), "Amy", "50", CaptureType.WEEKLY),
        ]

        ytd = bucket_total_values(events, DisplayWindow.YEAR_TO_DATE, now)
        everything = bucket_total_values(events, DisplayWindow.ALL, now)

        assert len(ytd) == 1
        assert ytd[0].entries["Amy"].values.stock == Decimal("100")
        assert len(everything) == 2

    def test_users_share_a_bucket(self, tz, now):
        """Should keep one entry per user inside the same day bucket."""
        events = [
            snapshot(tz, (2024, 3, 12, 18, 0), "Amy", "100"),
            snapshot(tz, (2024, 3, 12, 19, 0), "Ben", "50"),
        ]

        (bucket,) = bucket_total_values(events, DisplayWindow.ONE_WEEK, now)

        assert set(bucket.entries) == {"Amy", "Ben"}


# =============================================================================
# DAYLIGHT SAVING FALL-BACK
# =============================================================================

def fall_back(tz, hour, minute, username, stock, fold=0, capture=CaptureType.HOURLY):
    """Snapshot on Sunday 2024-11-03, when 01:00-02:00 happens twice in New York."""
    return TotalValueEvent(
        timestamp=datetime(2024, 11, 3, hour, minute, fold=fold, tzinfo=tz),
        username=username,
        values=AssetValues(stock=Decimal(stock)),
        capture_type=capture,
    )


class TestFallBackDay:
    """Tests for bucketing across the repeated hour."""

    def test_later_instant_wins_within_day(self, tz):
        """Should keep 01:30 EST over 01:45 EDT, which happened earlier."""
        now = datetime(2024, 11, 10, 12, 0, tzinfo=tz)
        events = [
            fall_back(tz, 1, 45, "Amy", "100", capture=CaptureType.DAILY),
            fall_back(tz, 1, 30, "Amy", "999", fold=1, capture=CaptureType.DAILY),
        ]

        for ordered in (events, events[::-1]):
            (bucket,) = bucket_total_values(ordered, DisplayWindow.ONE_MONTH, now)
            assert bucket.entries["Amy"].values.stock == Decimal("999")

    def test_repeated_hour_gets_its_own_bucket(self, tz):
        """Should split the two 01:00 hours into two buckets in real-time order."""
        now = datetime(2024, 11, 3, 12, 0, tzinfo=tz)
        events = [
            fall_back(tz, 1, 30, "Amy", "999", fold=1),
            fall_back(tz, 1, 45, "Amy", "100"),
        ]

        buckets = bucket_total_values(events, DisplayWindow.ONE_DAY, now)

        assert [b.start.isoformat() for b in buckets] == [
            "2024-11-03T01:00:00-04:00",
            "2024-11-03T01:00:00-05:00",
        ]
        assert [b.entries["Amy"].values.stock for b in buckets] == [Decimal("100"), Decimal("999")]

# tests/services/analytics/test_distribution.py
"""
Tests for the historical distribution resolver (weekly snap and breakdowns).
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from household_tracker.services.analytics.distribution import HistoricalDistributionResolver
from household_tracker.services.analytics.types import (
    ALL_ASSET_TYPES,
    AssetType,
    AssetValues,
    CaptureType,
    HoldingEvent,
    TotalValueEvent,
)

USERS = frozenset({"Amy", "Ben"})
PRICES = {"AAPL": Decimal("200"), "VTI": Decimal("250"), "CASH": Decimal("1")}


def price_of(ticker: str) -> Decimal:
    return PRICES.get(ticker, Decimal("0"))


def weekly(tz, d, username, stock, cash="0", capture=CaptureType.WEEKLY, hour=18):
    return TotalValueEvent(
        timestamp=datetime(d.year, d.month, d.day, hour, tzinfo=tz),
        username=username,
        values=AssetValues(stock=Decimal(stock), cash=Decimal(cash)),
        capture_type=capture,
    )


def holding(tz, d, username, ticker, shares, hour=18):
    return HoldingEvent(
        timestamp=datetime(d.year, d.month, d.day, hour, tzinfo=tz),
        username=username,
        ticker=ticker,
        shares=Decimal(shares),
    )


@pytest.fixture
def resolver() -> HistoricalDistributionResolver:
    return HistoricalDistributionResolver(weekly_match_days=3, snap_tolerance_days=7)


@pytest.fixture
def two_weeks(tz):
    return [
        weekly(tz, date(2024, 1, 1), "Amy", "1000", cash="200"),
        weekly(tz, date(2024, 1, 1), "Ben", "500"),
        weekly(tz, date(2024, 1, 8), "Amy", "1100"),
    ]


# =============================================================================
# AVAILABLE DATES AND SNAP
# =============================================================================

class TestSnap:
    """Tests for available_dates and snap."""

    def test_available_dates_are_week_starts(self, tz):
        """Should report the Monday of each week with a WEEKLY snapshot."""
        events = [
            weekly(tz, date(2024, 1, 3), "Amy", "1"),
            weekly(tz, date(2024, 1, 1), "Ben", "1"),
            weekly(tz, date(2024, 1, 10), "Amy", "1", capture=CaptureType.DAILY),
        ]

        assert HistoricalDistributionResolver.available_dates(events) == [date(2024, 1, 1)]

    def test_snaps_to_nearest(self, resolver):
        """Should pick Jan 1 for Jan 4 (3 days) over Jan 8 (4 days)."""
        assert resolver.snap(date(2024, 1, 4), [date(2024, 1, 1), date(2024, 1, 8)]) == date(2024, 1, 1)

    def test_snaps_forward_when_closer(self, resolver):
        """Should pick the later week start when it is closer."""
        assert resolver.snap(date(2024, 1, 6), [date(2024, 1, 1), date(2024, 1, 8)]) == date(2024, 1, 8)

    def test_tie_prefers_earlier_date(self, resolver):
        """Should break equidistant ties toward the earlier week start."""
        available = [date(2024, 1, 7), date(2024, 1, 1)]

        assert resolver.snap(date(2024, 1, 4), available) == date(2024, 1, 1)

    def test_beyond_tolerance(self, resolver):
        """Should return None when the nearest week start is too far away."""
        assert resolver.snap(date(2024, 2, 1), [date(2024, 1, 1), date(2024, 1, 8)]) is None

    def test_nothing_available(self, resolver):
        """Should return None without weekly snapshots."""
        assert resolver.snap(date(2024, 1, 4), []) is None


# =============================================================================
# RESOLVE
# =============================================================================

class TestResolve:
    """Tests for HistoricalDistributionResolver.resolve."""

    def test_none_requested_means_live(self, resolver, two_weeks):
        """Should return None so callers fall back to live data."""
        assert resolver.resolve(None, two_weeks, [], price_of, USERS) is None

    def test_by_user_from_snapped_week(self, resolver, two_weeks):
        """Should report each user's total from the snapped week."""
        result = resolver.resolve(date(2024, 1, 4), two_weeks, [], price_of, USERS)

        assert result.snapped_week_start == date(2024, 1, 1)
        assert result.requested_date == date(2024, 1, 4)
        assert result.by_user == {"Amy": Decimal("1200"), "Ben": Decimal("500")}

    def test_asset_filter_applies_to_by_user(self, resolver, two_weeks):
        """Should only count included asset classes."""
        result = resolver.resolve(
            date(2024, 1, 1), two_weeks, [], price_of, USERS, frozenset({AssetType.CASH}),
        )

        assert result.by_user == {"Amy": Decimal("200"), "Ben": Decimal("0")}

    def test_user_filter(self, resolver, two_weeks):
        """Should leave out users that are not selected."""
        result = resolver.resolve(date(2024, 1, 1), two_weeks, [], price_of, frozenset({"Ben"}))

        assert list(result.by_user) == ["Ben"]

    def test_latest_weekly_event_in_match_window_wins(self, resolver, tz):
        """Should use the latest WEEKLY snapshot within weekly_match_days of the week start."""
        events = [
            weekly(tz, date(2024, 1, 1), "Amy", "1000"),
            weekly(tz, date(2024, 1, 3), "Amy", "1050"),
            weekly(tz, date(2024, 1, 5), "Amy", "9999"),
        ]

        result = resolver.resolve(date(2024, 1, 1), events, [], price_of, USERS)

        assert result.by_user == {"Amy": Decimal("1050")}

    def test_latest_weekly_event_by_real_time_on_fall_back(self, tz):
        """Should pick the 01:30 EST snapshot over the earlier 01:45 EDT one."""
        resolver = HistoricalDistributionResolver(weekly_match_days=7, snap_tolerance_days=7)
        events = [
            TotalValueEvent(
                timestamp=datetime(2024, 11, 3, 1, minute, fold=fold, tzinfo=tz),
                username="Amy",
                values=AssetValues(stock=Decimal(stock)),
                capture_type=CaptureType.WEEKLY,
            )
            for minute, fold, stock in [(30, 1, "999"), (45, 0, "100")]
        ]

        result = resolver.resolve(date(2024, 10, 28), events, [], price_of, USERS)

        assert result.by_user == {"Amy": Decimal("999")}

    def test_by_stock_at_current_prices(self, resolver, two_weeks, tz):
        """Should value that week's holdings at current prices, largest first."""
        holdings = [
            holding(tz, date(2023, 12, 30), "Amy", "AAPL", "5"),
            holding(tz, date(2024, 1, 2), "Amy", "AAPL", "10"),
            holding(tz, date(2024, 1, 2), "Ben", "AAPL", "1"),
            holding(tz, date(2024, 1, 2), "Ben", "VTI", "20"),
            holding(tz, date(2024, 1, 2), "Ben", "CASH", "300"),
            holding(tz, date(2024, 1, 2), "Amy", "GONE", "0"),
        ]

        result = resolver.resolve(date(2024, 1, 4), two_weeks, holdings, price_of, USERS)

        assert result.by_stock == {
            "VTI": Decimal("5000"),
            "AAPL": Decimal("2200"),
            "CASH": Decimal("300"),
        }
        assert list(result.by_stock) == ["VTI", "AAPL", "CASH"]

    def test_by_stock_respects_asset_filter(self, resolver, two_weeks, tz):
        """Should drop tickers whose asset class is filtered out."""
        holdings = [
            holding(tz, date(2024, 1, 2), "Ben", "VTI", "20"),
            holding(tz, date(2024, 1, 2), "Ben", "CASH", "300"),
        ]

        result = resolver.resolve(
            date(2024, 1, 4), two_weeks, holdings, price_of, USERS, frozenset({AssetType.CASH}),
        )

        assert result.by_stock == {"CASH": Decimal("300")}

    def test_beyond_tolerance_is_empty(self, resolver, two_weeks):
        """Should return an empty distribution when nothing is within tolerance."""
        result = resolver.resolve(date(2024, 3, 1), two_weeks, [], price_of, USERS, ALL_ASSET_TYPES)

        assert result.snapped_week_start is None
        assert result.is_empty

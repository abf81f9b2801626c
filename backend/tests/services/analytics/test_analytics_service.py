# tests/services/analytics/test_analytics_service.py
"""
Integration tests for AnalyticsService over the in-memory datastore.

The household:
    Amy: 10 AAPL @ 190, 1000 CASH            -> live 2,900
    Ben: 4 VTI @ 250, 0.5 BTC @ 60,000       -> live 31,000

The clock is fixed at Friday 2024-03-15 14:30 America/New_York.
"""

from datetime import date
from decimal import Decimal

import pytest

from household_tracker.services.analytics.service import (
    AnalyticsConfig,
    AnalyticsService,
    RangeIds,
)
from household_tracker.services.analytics.types import AssetType
from household_tracker.services.datastore.gated import GatedRangeReader
from household_tracker.services.exceptions import (
    DatastoreUnavailableError,
    InvalidAssetTypeError,
    InvalidGroupingError,
    InvalidWindowError,
    RateLimitError,
)
from household_tracker.services.market_data.pricing import PriceResolver
from household_tracker.services.market_data.sheet_quotes import SheetQuoteProvider
from household_tracker.services.rate_gate import SlidingWindowRateGate

RANGES = RangeIds()
QUOTES_RANGE = "Sheet2!A1:P1000"
CRYPTO_RANGE = "Crypto!A1:E1000"


@pytest.fixture
def household(datastore):
    datastore.add_rows(
        RANGES.holdings,
        ["Amy", "AAPL", "10", ""],
        ["Amy", "CASH", "1000", ""],
        ["Ben", "VTI", "4", ""],
        ["Ben", "BTC", "0.5", ""],
    )
    datastore.add_rows(
        QUOTES_RANGE,
        ["AAPL", "AAPL", "Apple", "190"],
        ["VTI", "VTI", "Vanguard Total", "250"],
    )
    datastore.add_rows(CRYPTO_RANGE, ["BTC", "Bitcoin", "60000"])
    datastore.add_rows(
        RANGES.total_values,
        ["2024-02-26T18:00:00", "Amy", "1700", "1000", "0", "0", "WEEKLY"],
        ["2024-03-04T18:00:00", "Amy", "1750", "1000", "0", "0", "WEEKLY"],
        ["2024-03-04T18:00:00", "Ben", "900", "0", "0", "28000", "WEEKLY"],
        ["2024-03-12T18:00:00", "Amy", "1800", "1000", "0", "0", "DAILY"],
        ["2024-03-12T18:00:00", "Ben", "950", "0", "0", "29000", "DAILY"],
        ["2024-03-13T18:00:00", "Amy", "1850", "1000", "0", "0", "DAILY"],
        ["2024-03-15T09:00:00", "Amy", "1850", "1000", "0", "0", "HOURLY"],
        ["2024-03-15T10:00:00", "Ben", "990", "0", "0", "29500", "HOURLY"],
        ["2024-03-12T18:00:00", "Zed", "5", "0", "0", "0", "DAILY"],
        ["garbage", "Amy", "5", "0", "0", "0", "DAILY"],
    )
    datastore.add_rows(
        RANGES.holdings_history,
        ["2024-03-05T09:00:00", "Amy", "AAPL", "8", "first buy"],
        ["2024-03-05T09:00:00", "Ben", "VTI", "4", ""],
    )
    datastore.add_rows(
        RANGES.position_changes,
        ["2024-03-13T12:00:00", "Amy", "AAPL", "10", "2"],
        ["2024-03-15T10:00:20", "Amy", "AAPL", "10", "2"],
    )
    datastore.add_rows(
        RANGES.daily_rollups,
        ["Amy", "2000", "1000", "0", "0", "2024-03-14"],
        ["Amy", "1500", "1000", "0", "0", "2024-03-10"],
        ["Ben", "1000", "0", "0", "30000", ""],
    )
    return datastore


def values(points):
    return [p.value for p in points if not p.is_marker_only]


# =============================================================================
# VALUE SERIES
# =============================================================================

class TestValueSeries:
    """Tests for AnalyticsService.get_value_series."""

    async def test_week_series_ends_with_live_total(self, analytics_service, household, now):
        """Should chart daily buckets before today, then the live total."""
        series = await analytics_service.get_value_series("1W")

        assert values(series.points) == [Decimal("32750"), Decimal("2850"), Decimal("33900")]
        assert series.points[-1].is_live is True
        assert series.points[-1].timestamp == now
        assert series.live_total == Decimal("33900")
        assert series.selected_users == ["Amy", "Ben"]
        assert series.stale is False

    async def test_dropped_rows_are_counted(self, analytics_service, household):
        """Should count malformed and unknown-user rows."""
        series = await analytics_service.get_value_series("3M")

        assert series.dropped_rows == 2

    async def test_one_day_series_buckets_by_hour(self, analytics_service, household):
        """Should use today's hourly snapshots and append the live point."""
        series = await analytics_service.get_value_series("1D")

        assert values(series.points) == [Decimal("2850"), Decimal("30490"), Decimal("33900")]
        assert [p.label for p in series.points] == ["09:00", "10:00", "14:30"]

    async def test_long_window_uses_weekly_snapshots(self, analytics_service, household):
        """Should chart WEEKLY snapshots on YTD."""
        series = await analytics_service.get_value_series("YTD")

        assert values(series.points) == [Decimal("2700"), Decimal("31650"), Decimal("33900")]
        assert series.marker_count == 0

    async def test_long_window_skips_position_changes(self, analytics_service, household):
        """Should not read the position-change sheet for windows without markers."""
        household.fail_with(RANGES.position_changes, RateLimitError("datastore"))

        series = await analytics_service.get_value_series("3M")

        assert RANGES.position_changes not in household.calls
        assert series.points[-1].is_live is True

    async def test_user_filter(self, analytics_service, household):
        """Should sum only selected users and ignore unknown ones."""
        series = await analytics_service.get_value_series("1W", selected_users=["Amy", "Zed"])

        assert series.selected_users == ["Amy"]
        assert values(series.points) == [Decimal("2800"), Decimal("2850"), Decimal("2900")]

    async def test_asset_filter(self, analytics_service, household):
        """Should apply the asset filter to history and the live anchor."""
        series = await analytics_service.get_value_series("1W", asset_types=["cash"])

        assert values(series.points) == [Decimal("1000"), Decimal("1000"), Decimal("1000")]
        assert series.asset_types == [AssetType.CASH]

    async def test_group_by_asset_type(self, analytics_service, household):
        """Should break points down by asset class."""
        series = await analytics_service.get_value_series("1W", group_by="asset_type")

        assert series.points[-1].breakdown == {
            "stocks": Decimal("2900"),
            "cash": Decimal("1000"),
            "realestate": Decimal("0"),
            "crypto": Decimal("30000"),
        }

    @pytest.mark.parametrize(
        "kwargs, error",
        [
            ({"window": "2W"}, InvalidWindowError),
            ({"window": "1W", "asset_types": ["bonds"]}, InvalidAssetTypeError),
            ({"window": "1W", "group_by": "ticker"}, InvalidGroupingError),
        ],
    )
    async def test_rejects_bad_arguments(self, analytics_service, household, kwargs, error):
        """Should raise validation errors before reading anything."""
        with pytest.raises(error):
            await analytics_service.get_value_series(**kwargs)

        assert household.calls == []

    async def test_one_day_markers_merge_into_hour_point(self, analytics_service, household):
        """Should attach today's change to the 10:00 point."""
        series = await analytics_service.get_value_series("1D")

        ten_oclock = series.points[1]
        assert series.marker_count == 1
        assert ten_oclock.markers[0].ticker == "AAPL"
        assert ten_oclock.markers[0].change_amount == Decimal("2")

    async def test_week_markers_insert_marker_points(self, analytics_service, household):
        """Should insert marker-only points for changes away from any point."""
        series = await analytics_service.get_value_series("1W")

        assert series.marker_count == 2
        assert any(p.is_marker_only for p in series.points)
        assert series.points[-1].is_live is True

    async def test_live_prices_unavailable(self, analytics_service, household):
        """Should return history without a live anchor and say why."""
        household.fail_with(QUOTES_RANGE, DatastoreUnavailableError(QUOTES_RANGE, reason="HTTP 503"))

        series = await analytics_service.get_value_series("1W")

        assert series.live_total is None
        assert not any(p.is_live for p in series.points)
        assert values(series.points) == [Decimal("32750"), Decimal("2850")]
        assert any("Live prices unavailable" in w for w in series.warnings)

    async def test_stale_history_is_flagged(self, analytics_service, household, clock):
        """Should serve expired rows when the datastore fails, flagged stale."""
        await analytics_service.get_value_series("1W")
        clock.advance(301)
        household.fail_with(RANGES.total_values, DatastoreUnavailableError(RANGES.total_values))

        series = await analytics_service.get_value_series("1W")

        assert series.stale is True
        assert series.warnings[0].startswith(f"Showing cached data for {RANGES.total_values}")
        assert values(series.points)[0] == Decimal("32750")

    async def test_repeat_requests_use_cache(self, analytics_service, household):
        """Should not touch the datastore again inside the freshness window."""
        await analytics_service.get_value_series("1W")
        reads = len(household.calls)

        await analytics_service.get_value_series("1M")

        assert len(household.calls) == reads

    async def test_rate_limited_without_cache(self, household, cache, analytics_config, clock):
        """Should raise RateLimitError when the gate is exhausted and nothing is cached."""
        gate = SlidingWindowRateGate(max_calls=2, window_seconds=60, clock=clock)
        reader = GatedRangeReader(household, gate, cache)
        quotes = SheetQuoteProvider(reader, quotes_range=QUOTES_RANGE, crypto_range=CRYPTO_RANGE)
        service = AnalyticsService(reader, PriceResolver(quotes), analytics_config, clock)

        with pytest.raises(RateLimitError):
            await service.get_value_series("1W")


# =============================================================================
# DISTRIBUTIONS AND SUMMARIES
# =============================================================================

class TestDistributions:
    """Tests for historical and live distributions."""

    async def test_historical_distribution(self, analytics_service, household):
        """Should snap to the nearest weekly snapshot and value that week's holdings now."""
        dist = await analytics_service.get_historical_distribution(date(2024, 3, 7))

        assert dist.snapped_week_start == date(2024, 3, 4)
        assert dist.by_user == {"Amy": Decimal("2750"), "Ben": Decimal("28900")}
        assert dist.by_stock == {"AAPL": Decimal("1520"), "VTI": Decimal("1000")}

    async def test_historical_distribution_without_date(self, analytics_service, household):
        """Should return None when no date is requested."""
        assert await analytics_service.get_historical_distribution(None) is None

    async def test_historical_distribution_too_far(self, analytics_service, household):
        """Should return an empty distribution beyond the snap tolerance."""
        dist = await analytics_service.get_historical_distribution(date(2023, 6, 1))

        assert dist.snapped_week_start is None
        assert dist.is_empty

    async def test_available_dates(self, analytics_service, household):
        """Should list week starts with weekly snapshots."""
        dates = await analytics_service.get_available_historical_dates()

        assert dates == [date(2024, 2, 26), date(2024, 3, 4)]

    async def test_live_summary(self, analytics_service, household):
        """Should total live holdings by user, asset class and stock."""
        summary = await analytics_service.get_live_summary()

        assert summary.total_value == Decimal("33900")
        assert list(summary.by_user) == ["Ben", "Amy"]
        assert summary.by_user["Amy"] == Decimal("2900")
        assert summary.by_asset_type["crypto"] == Decimal("30000")
        assert list(summary.by_stock) == ["BTC", "AAPL", "CASH", "VTI"]
        assert summary.yearly_dividend == Decimal("0")

    async def test_live_summary_with_filters(self, analytics_service, household):
        """Should apply user and asset filters to every total."""
        summary = await analytics_service.get_live_summary(
            selected_users=["Ben"], asset_types=["stocks"],
        )

        assert summary.total_value == Decimal("1000")
        assert summary.by_stock == {"VTI": Decimal("1000")}

    async def test_stock_distribution(self, analytics_service, household):
        """Should split one ticker across users at the live price."""
        dist = await analytics_service.get_stock_distribution("aapl")

        assert dist.ticker == "AAPL"
        assert dist.price == Decimal("190")
        assert dist.by_user == {"Amy": Decimal("1900")}
        assert dist.shares_by_user == {"Amy": Decimal("10")}
        assert dist.total_value == Decimal("1900")

    async def test_user_totals(self, analytics_service, household):
        """Should report each user's latest daily rollup, filtered by asset class."""
        totals = await analytics_service.get_user_totals(asset_types=["stocks"])

        assert [(t.username, t.snapshot_date, t.total_value) for t in totals] == [
            ("Amy", date(2024, 3, 14), Decimal("2000")),
            ("Ben", date(2024, 3, 14), Decimal("1000")),
        ]
        assert totals[0].values.cash == Decimal("0")


# =============================================================================
# HOUSEKEEPING
# =============================================================================

class TestHousekeeping:
    """Tests for known users and rate gate status."""

    async def test_known_users_include_configured(self, reader, sheet_quotes, tz, clock, household):
        """Should merge configured users with users on the holdings sheet."""
        service = AnalyticsService(
            reader,
            PriceResolver(sheet_quotes),
            AnalyticsConfig(tz=tz, known_users=frozenset({"Cy"})),
            clock,
        )

        assert await service.get_known_users() == ["Amy", "Ben", "Cy"]

    async def test_rate_gate_status(self, analytics_service, household):
        """Should report gate usage and cache counters without reading."""
        await analytics_service.get_known_users()
        await analytics_service.get_known_users()

        usage = analytics_service.get_rate_gate_status()

        assert usage.gate.calls_in_window == 1
        assert usage.datastore_reads == 1
        assert usage.cache_hits == 1
        assert household.calls == [RANGES.holdings]

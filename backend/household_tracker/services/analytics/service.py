# backend/household_tracker/services/analytics/service.py
"""
Analytics Service orchestrator.

Entry point for every portfolio timeline query. For each call it:
1. Reads the needed ranges through the GatedRangeReader (cache + rate gate),
   concurrently via asyncio.gather
2. Parses rows into typed events, dropping malformed and unknown-user rows
3. Buckets, deduplicates and sums snapshots into a value series
4. Values current holdings at live prices and injects the live anchor
5. Overlays position-change markers (1D, 1W, 1M)

Nothing is written back and no state is shared between calls other than
the process-wide range cache and rate gate.

Architecture:
    AnalyticsService
        ├── uses → GatedRangeReader (RangeCache + SlidingWindowRateGate)
        ├── uses → PriceResolver (quote sheets, optional Yahoo fallback)
        ├── uses → record parsers (parsers.py)
        ├── uses → bucket_total_values / assemble_series / LiveAnchorInjector
        ├── uses → PositionChangeCorrelator
        └── uses → HistoricalDistributionResolver

Usage:
    from household_tracker.services.analytics import AnalyticsService

    service = AnalyticsService(reader, price_resolver, AnalyticsConfig.from_settings(settings))

    series = await service.get_value_series("1M", selected_users=["Amy"])
    dist = await service.get_historical_distribution(date(2024, 1, 4))
    dates = await service.get_available_historical_dates()
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Iterable
from zoneinfo import ZoneInfo

from household_tracker.services.analytics.bucketing import bucket_total_values
from household_tracker.services.analytics.distribution import HistoricalDistributionResolver
from household_tracker.services.analytics.live import value_holdings
from household_tracker.services.analytics.markers import (
    PositionChangeCorrelator,
    supports_markers,
)
from household_tracker.services.analytics.parsers import (
    CurrentHoldingParser,
    DailyRollupParser,
    HoldingEventParser,
    PositionChangeParser,
    RecordParser,
    TotalValueParser,
)
from household_tracker.services.analytics.series import (
    LiveAnchorInjector,
    assemble_series,
    breakdown_of,
)
from household_tracker.services.analytics.types import (
    AssetType,
    CurrentHolding,
    DailyRollupEvent,
    DisplayWindow,
    GroupBy,
    HistoricalDistribution,
    LivePortfolio,
    LiveSummary,
    StockDistribution,
    UserTotal,
    ValueSeries,
    classify_ticker,
)
from household_tracker.services.datastore.gated import GatedRangeReader, RangeSnapshot
from household_tracker.services.exceptions import DatastoreUnavailableError, RateLimitError
from household_tracker.services.market_data.pricing import PriceBook, PriceResolver
from household_tracker.services.protocols import Clock
from household_tracker.services.rate_gate import RateGateStatus, SystemClock

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class RangeIds:
    """A1 ranges of the streams the engine reads."""
    holdings: str = "Sheet1!A1:D1000"
    holdings_history: str = "HoldingsHistory!A1:E10000"
    total_values: str = "TotalValueHistory!A1:G10000"
    daily_rollups: str = "DailyTotals!A1:F1000"
    position_changes: str = "PositionChanges!A1:E10000"


@dataclass(frozen=True)
class AnalyticsConfig:
    """
    Engine settings.

    Attributes:
        tz: Local timezone for naive timestamps and calendar days
        ranges: Stream range ids
        known_users: Users accepted in addition to those on the holdings sheet
        change_merge_seconds: Marker merge distance
        weekly_match_days: Half-width of the weekly snapshot window
        snap_tolerance_days: Maximum snap distance
        live_anchor_keep_hour_point: 1D keeps the on-the-hour point beside the live point
    """
    tz: tzinfo = ZoneInfo("America/New_York")
    ranges: RangeIds = field(default_factory=RangeIds)
    known_users: frozenset[str] = frozenset()
    change_merge_seconds: int = 60
    weekly_match_days: int = 3
    snap_tolerance_days: int = 7
    live_anchor_keep_hour_point: bool = True

    @classmethod
    def from_settings(cls, settings) -> "AnalyticsConfig":
        return cls(
            tz=settings.tz,
            ranges=RangeIds(
                holdings=settings.range_holdings,
                holdings_history=settings.range_holdings_history,
                total_values=settings.range_total_values,
                daily_rollups=settings.range_daily_rollups,
                position_changes=settings.range_position_changes,
            ),
            known_users=frozenset(settings.known_users),
            change_merge_seconds=settings.change_merge_seconds,
            weekly_match_days=settings.weekly_match_days,
            snap_tolerance_days=settings.snap_tolerance_days,
            live_anchor_keep_hour_point=settings.live_anchor_keep_hour_point,
        )


@dataclass(frozen=True)
class DatastoreUsage:
    """Rate gate status plus cumulative read counters."""
    gate: RateGateStatus
    datastore_reads: int
    cache_hits: int
    cache_misses: int


@dataclass
class _ReadContext:
    """Stale flags and warnings collected while serving one call."""
    stale: bool = False
    warnings: list[str] = field(default_factory=list)
    dropped_rows: int = 0

    def note_snapshot(self, snapshot: RangeSnapshot) -> None:
        if snapshot.stale:
            self.stale = True
            self.warnings.append(
                f"Showing cached data for {snapshot.range_id} "
                f"from {snapshot.fetched_at.isoformat()}: {snapshot.warning}"
            )

    def note_prices(self, prices: PriceBook) -> None:
        self.stale = self.stale or prices.stale
        self.warnings.extend(w for w in prices.warnings if w not in self.warnings)

    def note_parser(self, parser: RecordParser) -> None:
        self.dropped_rows += parser.stats.dropped_total


# =============================================================================
# ANALYTICS SERVICE
# =============================================================================

class AnalyticsService:
    """
    Main orchestrator for portfolio timeline analytics.

    Args:
        reader: Gated range reader (shared cache and rate gate)
        price_resolver: Live price resolution
        config: Engine settings
        clock: Time source (SystemClock by default)
    """

    def __init__(
            self,
            reader: GatedRangeReader,
            price_resolver: PriceResolver,
            config: AnalyticsConfig | None = None,
            clock: Clock | None = None,
    ):
        self._reader = reader
        self._prices = price_resolver
        self._config = config or AnalyticsConfig()
        self._clock: Clock = clock or SystemClock()
        self._injector = LiveAnchorInjector(keep_hour_point=self._config.live_anchor_keep_hour_point)
        self._correlator = PositionChangeCorrelator(merge_seconds=self._config.change_merge_seconds)
        self._distribution = HistoricalDistributionResolver(
            weekly_match_days=self._config.weekly_match_days,
            snap_tolerance_days=self._config.snap_tolerance_days,
        )
        logger.info("AnalyticsService initialized")

    # =========================================================================
    # PUBLIC API - TIMELINE
    # =========================================================================

    async def get_value_series(
            self,
            window: str | DisplayWindow,
            selected_users: Iterable[str] | None = None,
            asset_types: Iterable[str | AssetType] | None = None,
            group_by: str | GroupBy = GroupBy.USER,
            force_refresh: bool = False,
    ) -> ValueSeries:
        """
        Build the chart series for a display window.

        Args:
            window: 1D, 1W, 1M, 3M, YTD, 1Y or ALL
            selected_users: Users to include (None: every known user)
            asset_types: Asset classes to include (None: all)
            group_by: Breakdown per point ("user" or "asset_type")
            force_refresh: Bypass fresh cache entries

        Returns:
            ValueSeries ending with the live anchor when live prices are available

        Raises:
            InvalidWindowError / InvalidAssetTypeError / InvalidGroupingError: Bad arguments
            RateLimitError: Rate gate rejected a read and nothing was cached
            DatastoreUnavailableError: Datastore unreachable and nothing was cached
        """
        window = DisplayWindow.parse(window)
        group = GroupBy.parse(group_by)
        assets = AssetType.parse_many(asset_types)
        now = self._now()
        ctx = _ReadContext()

        ranges = self._config.ranges
        range_ids = [ranges.holdings, ranges.total_values]
        if supports_markers(window):
            range_ids.append(ranges.position_changes)
        holdings_snap, totals_snap, *changes_snap = await self._read_all(ctx, force_refresh, *range_ids)
        holdings = self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        known = self._known_users(holdings)
        users = self._select_users(selected_users, known)

        totals = self._parse(ctx, TotalValueParser(self._config.tz, known), totals_snap)
        buckets = bucket_total_values(totals, window, now)
        points = assemble_series(buckets, window, users, assets, group)
        logger.info(
            f"Series {window.value}: {len(totals)} snapshots -> {len(buckets)} buckets, "
            f"{len(points)} points for {len(users)} users"
        )

        live_total: Decimal | None = None
        crypto_symbols: frozenset[str] = frozenset()
        try:
            prices = await self._prices.build({h.ticker for h in holdings}, force_refresh)
        except (RateLimitError, DatastoreUnavailableError) as e:
            logger.warning(f"Live prices unavailable, series has no live anchor: {e}")
            ctx.warnings.append(f"Live prices unavailable: {e}")
        else:
            ctx.note_prices(prices)
            crypto_symbols = prices.crypto_symbols
            live = value_holdings(holdings, prices, users)
            live_total = sum((v.value_for(assets) for v in live.by_user.values()), ZERO)
            points = self._injector.inject(
                points, window, live_total, now, breakdown_of(live.by_user, assets, group),
            )

        if changes_snap:
            changes = self._parse(ctx, PositionChangeParser(self._config.tz, known), changes_snap[0])
            points = self._correlator.overlay(
                points, changes, window, now, users, assets, crypto_symbols,
            )

        return ValueSeries(
            window=window,
            points=points,
            selected_users=sorted(users),
            asset_types=[a for a in AssetType if a in assets],
            group_by=group,
            live_total=live_total,
            generated_at=now,
            stale=ctx.stale,
            warnings=ctx.warnings,
            dropped_rows=ctx.dropped_rows,
        )

    # =========================================================================
    # PUBLIC API - DISTRIBUTIONS
    # =========================================================================

    async def get_historical_distribution(
            self,
            requested_date: date | None,
            selected_users: Iterable[str] | None = None,
            asset_types: Iterable[str | AssetType] | None = None,
            force_refresh: bool = False,
    ) -> HistoricalDistribution | None:
        """
        Distribution as of the weekly snapshot nearest to requested_date.

        Holdings from that week are valued at current prices.

        Returns:
            None when requested_date is None (callers use live data);
            an empty distribution when no snapshot is within tolerance
        """
        if requested_date is None:
            return None

        assets = AssetType.parse_many(asset_types)
        ctx = _ReadContext()
        ranges = self._config.ranges
        holdings_snap, totals_snap, history_snap = await self._read_all(
            ctx, force_refresh, ranges.holdings, ranges.total_values, ranges.holdings_history,
        )
        holdings = self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        known = self._known_users(holdings)
        users = self._select_users(selected_users, known)

        totals = self._parse(ctx, TotalValueParser(self._config.tz, known), totals_snap)
        history = self._parse(ctx, HoldingEventParser(self._config.tz, known), history_snap)

        prices = await self._prices.build({e.ticker for e in history}, force_refresh)
        ctx.note_prices(prices)

        result = self._distribution.resolve(
            requested_date,
            totals,
            history,
            prices.price_of,
            users,
            assets,
            prices.crypto_symbols,
        )
        result.stale = ctx.stale
        result.warnings = ctx.warnings
        return result

    async def get_available_historical_dates(self, force_refresh: bool = False) -> list[date]:
        """Monday week starts that have WEEKLY snapshots, ascending."""
        ctx = _ReadContext()
        ranges = self._config.ranges
        holdings_snap, totals_snap = await self._read_all(
            ctx, force_refresh, ranges.holdings, ranges.total_values,
        )
        known = self._known_users(
            self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        )
        totals = self._parse(ctx, TotalValueParser(self._config.tz, known), totals_snap)
        return self._distribution.available_dates(totals)

    async def get_live_summary(
            self,
            selected_users: Iterable[str] | None = None,
            asset_types: Iterable[str | AssetType] | None = None,
            force_refresh: bool = False,
    ) -> LiveSummary:
        """
        Live totals: by user, by asset type, by stock, and the estimated
        yearly dividend.
        """
        assets = AssetType.parse_many(asset_types)
        ctx = _ReadContext()
        holdings, users = await self._load_holdings(ctx, selected_users, force_refresh)
        portfolio, prices = await self._value(ctx, holdings, users, force_refresh)

        by_stock = {
            ticker: value
            for ticker, value in portfolio.by_ticker.items()
            if classify_ticker(ticker, prices.crypto_symbols) in assets
        }
        return LiveSummary(
            total_value=sum((v.value_for(assets) for v in portfolio.by_user.values()), ZERO),
            by_user=_sorted_desc({
                username: values.value_for(assets)
                for username, values in portfolio.by_user.items()
            }),
            by_asset_type=breakdown_of(portfolio.by_user, assets, GroupBy.ASSET_TYPE),
            by_stock=_sorted_desc(by_stock),
            yearly_dividend=portfolio.yearly_dividend,
            generated_at=self._now(),
            stale=ctx.stale,
            warnings=ctx.warnings,
        )

    async def get_stock_distribution(
            self,
            ticker: str,
            selected_users: Iterable[str] | None = None,
            force_refresh: bool = False,
    ) -> StockDistribution:
        """Value of one ticker held by each selected user, at the live price."""
        symbol = ticker.strip().upper()
        ctx = _ReadContext()
        holdings, users = await self._load_holdings(ctx, selected_users, force_refresh)
        position = [h for h in holdings if h.ticker == symbol]
        portfolio, prices = await self._value(ctx, position, users, force_refresh)

        shares_by_user: dict[str, Decimal] = {}
        for holding in position:
            if holding.username in users:
                shares_by_user[holding.username] = shares_by_user.get(holding.username, ZERO) + holding.shares

        by_user = _sorted_desc({
            username: value
            for (username, _), value in portfolio.by_user_ticker.items()
        })
        return StockDistribution(
            ticker=symbol,
            price=prices.price_of(symbol),
            by_user=by_user,
            shares_by_user=dict(sorted(shares_by_user.items())),
            total_value=sum(by_user.values(), ZERO),
            warnings=ctx.warnings,
        )

    async def get_user_totals(
            self,
            selected_users: Iterable[str] | None = None,
            asset_types: Iterable[str | AssetType] | None = None,
            force_refresh: bool = False,
    ) -> list[UserTotal]:
        """Latest daily rollup per selected user, for stacked views."""
        assets = AssetType.parse_many(asset_types)
        ctx = _ReadContext()
        ranges = self._config.ranges
        holdings_snap, rollups_snap = await self._read_all(
            ctx, force_refresh, ranges.holdings, ranges.daily_rollups,
        )
        known = self._known_users(
            self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        )
        users = self._select_users(selected_users, known)
        parser = DailyRollupParser(self._config.tz, known, today=self._now().date())
        rollups = self._parse(ctx, parser, rollups_snap)

        latest: dict[str, DailyRollupEvent] = {}
        for event in rollups:
            if event.username not in users:
                continue
            kept = latest.get(event.username)
            if kept is None or event.snapshot_date >= kept.snapshot_date:
                latest[event.username] = event

        return [
            UserTotal(
                username=username,
                snapshot_date=event.snapshot_date,
                values=event.values.only(assets),
                total_value=event.values.value_for(assets),
            )
            for username, event in sorted(latest.items())
        ]

    # =========================================================================
    # PUBLIC API - HOUSEKEEPING
    # =========================================================================

    async def get_known_users(self, force_refresh: bool = False) -> list[str]:
        """Configured users plus every user on the holdings sheet, sorted."""
        ctx = _ReadContext()
        (holdings_snap,) = await self._read_all(ctx, force_refresh, self._config.ranges.holdings)
        holdings = self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        return sorted(self._known_users(holdings))

    def get_rate_gate_status(self) -> DatastoreUsage:
        """Current rate gate usage and cache counters."""
        return DatastoreUsage(
            gate=self._reader.gate.status(),
            datastore_reads=self._reader.datastore_reads,
            cache_hits=self._reader.cache.hits,
            cache_misses=self._reader.cache.misses,
        )

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _now(self) -> datetime:
        return self._clock.now().astimezone(self._config.tz)

    async def _read_all(
            self,
            ctx: _ReadContext,
            force_refresh: bool,
            *range_ids: str,
    ) -> list[RangeSnapshot]:
        snapshots = await asyncio.gather(
            *(self._reader.read(range_id, force_refresh=force_refresh) for range_id in range_ids)
        )
        for snapshot in snapshots:
            ctx.note_snapshot(snapshot)
        return list(snapshots)

    @staticmethod
    def _parse(ctx: _ReadContext, parser: RecordParser, snapshot: RangeSnapshot) -> list:
        events = list(parser.parse(snapshot.rows))
        ctx.note_parser(parser)
        return events

    def _known_users(self, holdings: Iterable[CurrentHolding]) -> frozenset[str]:
        return self._config.known_users | {h.username for h in holdings}

    @staticmethod
    def _select_users(selected: Iterable[str] | None, known: frozenset[str]) -> frozenset[str]:
        """Requested users that are known; None selects every known user."""
        if selected is None:
            return known
        requested = {u.strip() for u in selected if u and u.strip()}
        unknown = requested - known
        if unknown:
            logger.debug(f"Ignoring unknown users: {sorted(unknown)}")
        return frozenset(requested & known)

    async def _load_holdings(
            self,
            ctx: _ReadContext,
            selected_users: Iterable[str] | None,
            force_refresh: bool,
    ) -> tuple[list[CurrentHolding], frozenset[str]]:
        (holdings_snap,) = await self._read_all(ctx, force_refresh, self._config.ranges.holdings)
        holdings = self._parse(ctx, CurrentHoldingParser(self._config.tz), holdings_snap)
        return holdings, self._select_users(selected_users, self._known_users(holdings))

    async def _value(
            self,
            ctx: _ReadContext,
            holdings: list[CurrentHolding],
            users: frozenset[str],
            force_refresh: bool,
    ) -> tuple[LivePortfolio, PriceBook]:
        prices = await self._prices.build({h.ticker for h in holdings}, force_refresh)
        ctx.note_prices(prices)
        return value_holdings(holdings, prices, users), prices


def _sorted_desc(values: dict[str, Decimal]) -> dict[str, Decimal]:
    return dict(sorted(values.items(), key=lambda item: (-item[1], item[0])))

# backend/household_tracker/routers/analytics.py
"""
Portfolio timeline endpoints.

- GET /analytics/series - Value series for a display window
- GET /analytics/distribution - Distribution by user and stock (historical or live)
- GET /analytics/distribution/dates - Week starts with weekly snapshots
- GET /analytics/distribution/stocks/{ticker} - Per-user split of one ticker
- GET /analytics/summary - Live totals and estimated yearly dividend
- GET /analytics/totals - Latest daily rollup per user
- GET /analytics/users - Known users
- GET /analytics/rate-limit - Datastore rate gate status

Filters:
- users: Repeatable (?users=Amy&users=Ben); omitted = every known user
- asset_types: Repeatable; stocks, cash, realestate, crypto; omitted = all
- refresh: Bypass fresh cache entries (the datastore rate gate still applies)

Domain errors (bad window, rate limit, datastore down) are mapped to HTTP
responses by the global handlers in main.py.
"""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request

from household_tracker.dependencies import get_analytics_service
from household_tracker.middleware.rate_limit import RATE_LIMIT_ANALYTICS, limiter
from household_tracker.schemas.analytics import (
    AvailableDatesResponse,
    ChangeMarkerResponse,
    DistributionResponse,
    KnownUsersResponse,
    LiveSummaryResponse,
    RateLimitStatusResponse,
    SeriesPointResponse,
    StockDistributionResponse,
    UserTotalResponse,
    UserTotalsResponse,
    ValueSeriesResponse,
)
from household_tracker.services.analytics import (
    AnalyticsService,
    DatastoreUsage,
    HistoricalDistribution,
    LiveSummary,
    StockDistribution,
    UserTotal,
    ValueSeries,
)
from household_tracker.services.analytics.types import ChangeMarker, SeriesPoint

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _decimal_to_str(value: Decimal | None) -> str | None:
    """Decimal -> plain string for JSON (no exponent, no trailing zeros)."""
    if value is None:
        return None
    if isinstance(value, int):
        value = Decimal(value)
    return format(value.normalize(), "f")


def _decimal_map(values: dict[str, Decimal]) -> dict[str, str]:
    return {key: _decimal_to_str(value) for key, value in values.items()}


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_marker(marker: ChangeMarker) -> ChangeMarkerResponse:
    return ChangeMarkerResponse(
        timestamp=marker.timestamp,
        username=marker.username,
        ticker=marker.ticker,
        shares=_decimal_to_str(marker.shares),
        change_amount=_decimal_to_str(marker.change_amount),
        direction=marker.direction.value,
        resolved_portfolio_value=_decimal_to_str(marker.resolved_portfolio_value),
    )


def _map_point(point: SeriesPoint) -> SeriesPointResponse:
    return SeriesPointResponse(
        timestamp=point.timestamp,
        key=point.key,
        label=point.label,
        granularity=point.granularity.value,
        value=_decimal_to_str(point.value),
        breakdown=_decimal_map(point.breakdown),
        is_live=point.is_live,
        is_marker_only=point.is_marker_only,
        markers=[_map_marker(m) for m in point.markers],
    )


def _map_series(series: ValueSeries) -> ValueSeriesResponse:
    return ValueSeriesResponse(
        window=series.window.value,
        group_by=series.group_by.value,
        selected_users=series.selected_users,
        asset_types=[a.value for a in series.asset_types],
        live_total=_decimal_to_str(series.live_total),
        points=[_map_point(p) for p in series.points],
        marker_count=series.marker_count,
        dropped_rows=series.dropped_rows,
        generated_at=series.generated_at,
        stale=series.stale,
        warnings=series.warnings,
    )


def _map_historical(dist: HistoricalDistribution) -> DistributionResponse:
    return DistributionResponse(
        source="historical",
        requested_date=dist.requested_date,
        snapped_week_start=dist.snapped_week_start,
        by_user=_decimal_map(dist.by_user),
        by_stock=_decimal_map(dist.by_stock),
        stale=dist.stale,
        warnings=dist.warnings,
    )


def _map_live_distribution(summary: LiveSummary) -> DistributionResponse:
    return DistributionResponse(
        source="live",
        by_user=_decimal_map(summary.by_user),
        by_stock=_decimal_map(summary.by_stock),
        stale=summary.stale,
        warnings=summary.warnings,
    )


def _map_summary(summary: LiveSummary) -> LiveSummaryResponse:
    return LiveSummaryResponse(
        total_value=_decimal_to_str(summary.total_value),
        yearly_dividend=_decimal_to_str(summary.yearly_dividend),
        by_user=_decimal_map(summary.by_user),
        by_asset_type=_decimal_map(summary.by_asset_type),
        by_stock=_decimal_map(summary.by_stock),
        generated_at=summary.generated_at,
        stale=summary.stale,
        warnings=summary.warnings,
    )


def _map_stock_distribution(dist: StockDistribution) -> StockDistributionResponse:
    return StockDistributionResponse(
        ticker=dist.ticker,
        price=_decimal_to_str(dist.price),
        total_value=_decimal_to_str(dist.total_value),
        by_user=_decimal_map(dist.by_user),
        shares_by_user=_decimal_map(dist.shares_by_user),
        warnings=dist.warnings,
    )


def _map_user_total(total: UserTotal) -> UserTotalResponse:
    return UserTotalResponse(
        username=total.username,
        snapshot_date=total.snapshot_date,
        stock=_decimal_to_str(total.values.stock),
        cash=_decimal_to_str(total.values.cash),
        real_estate=_decimal_to_str(total.values.real_estate),
        crypto=_decimal_to_str(total.values.crypto),
        total_value=_decimal_to_str(total.total_value),
    )


def _map_usage(usage: DatastoreUsage) -> RateLimitStatusResponse:
    return RateLimitStatusResponse(
        calls_in_window=usage.gate.calls_in_window,
        limit=usage.gate.limit,
        percentage=usage.gate.percentage,
        is_limited=usage.gate.is_limited,
        retry_after_seconds=usage.gate.retry_after_seconds,
        total_calls=usage.gate.total_calls,
        rejected_calls=usage.gate.rejected_calls,
        datastore_reads=usage.datastore_reads,
        cache_hits=usage.cache_hits,
        cache_misses=usage.cache_misses,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/series",
    response_model=ValueSeriesResponse,
    summary="Get the portfolio value series for a window",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_value_series(
        request: Request,  # Required for rate limiting
        window: str = Query(
            default="1M",
            description="Display window: 1D, 1W, 1M, 3M, YTD, 1Y or ALL",
        ),
        users: list[str] | None = Query(
            default=None,
            description="Users to include (repeatable). Omit for every known user.",
        ),
        asset_types: list[str] | None = Query(
            default=None,
            description="Asset classes to include: stocks, cash, realestate, crypto",
        ),
        group_by: str = Query(
            default="user",
            description="Breakdown per point: 'user' or 'asset_type'",
        ),
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> ValueSeriesResponse:
    """
    Value series with the live total as its final point.

    1D, 1W and 1M series carry position-change markers.
    """
    series = await service.get_value_series(
        window,
        selected_users=users,
        asset_types=asset_types,
        group_by=group_by,
        force_refresh=refresh,
    )
    return _map_series(series)


@router.get(
    "/distribution",
    response_model=DistributionResponse,
    summary="Get the value distribution by user and stock",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_distribution(
        request: Request,
        date_: date | None = Query(
            default=None,
            alias="date",
            description="Historical date (snapped to the nearest weekly snapshot). Omit for live data.",
        ),
        users: list[str] | None = Query(default=None, description="Users to include (repeatable)"),
        asset_types: list[str] | None = Query(default=None, description="Asset classes to include"),
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> DistributionResponse:
    """
    Historical distribution as of the nearest weekly snapshot, or the live
    distribution when no date is given.
    """
    historical = await service.get_historical_distribution(
        date_,
        selected_users=users,
        asset_types=asset_types,
        force_refresh=refresh,
    )
    if historical is not None:
        return _map_historical(historical)

    summary = await service.get_live_summary(
        selected_users=users,
        asset_types=asset_types,
        force_refresh=refresh,
    )
    return _map_live_distribution(summary)


@router.get(
    "/distribution/dates",
    response_model=AvailableDatesResponse,
    summary="List week starts with weekly snapshots",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_available_dates(
        request: Request,
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> AvailableDatesResponse:
    dates = await service.get_available_historical_dates(force_refresh=refresh)
    return AvailableDatesResponse(dates=dates, count=len(dates))


@router.get(
    "/distribution/stocks/{ticker}",
    response_model=StockDistributionResponse,
    summary="Get how one ticker is split across users",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_stock_distribution(
        request: Request,
        ticker: str,
        users: list[str] | None = Query(default=None, description="Users to include (repeatable)"),
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> StockDistributionResponse:
    dist = await service.get_stock_distribution(ticker, selected_users=users, force_refresh=refresh)
    return _map_stock_distribution(dist)


@router.get(
    "/summary",
    response_model=LiveSummaryResponse,
    summary="Get live totals and the estimated yearly dividend",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_summary(
        request: Request,
        users: list[str] | None = Query(default=None, description="Users to include (repeatable)"),
        asset_types: list[str] | None = Query(default=None, description="Asset classes to include"),
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> LiveSummaryResponse:
    summary = await service.get_live_summary(
        selected_users=users,
        asset_types=asset_types,
        force_refresh=refresh,
    )
    return _map_summary(summary)


@router.get(
    "/totals",
    response_model=UserTotalsResponse,
    summary="Get the latest daily rollup per user",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_user_totals(
        request: Request,
        users: list[str] | None = Query(default=None, description="Users to include (repeatable)"),
        asset_types: list[str] | None = Query(default=None, description="Asset classes to include"),
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> UserTotalsResponse:
    totals = await service.get_user_totals(
        selected_users=users,
        asset_types=asset_types,
        force_refresh=refresh,
    )
    return UserTotalsResponse(
        totals=[_map_user_total(t) for t in totals],
        grand_total=_decimal_to_str(sum((t.total_value for t in totals), Decimal("0"))),
    )


@router.get(
    "/users",
    response_model=KnownUsersResponse,
    summary="List known users",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_known_users(
        request: Request,
        refresh: bool = Query(default=False, description="Bypass fresh cache entries"),
        service: AnalyticsService = Depends(get_analytics_service),
) -> KnownUsersResponse:
    return KnownUsersResponse(users=await service.get_known_users(force_refresh=refresh))


@router.get(
    "/rate-limit",
    response_model=RateLimitStatusResponse,
    summary="Get datastore rate gate usage",
)
@limiter.limit(RATE_LIMIT_ANALYTICS)
async def get_rate_limit_status(
        request: Request,
        service: AnalyticsService = Depends(get_analytics_service),
) -> RateLimitStatusResponse:
    """Calls in the current window, limit and cache counters. Never touches the datastore."""
    return _map_usage(service.get_rate_gate_status())

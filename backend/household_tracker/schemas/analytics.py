# backend/household_tracker/schemas/analytics.py
"""
Pydantic schemas for the Analytics API.

Design decisions:
- Money and share amounts are serialized as STRINGS to preserve Decimal precision
- Timestamps are ISO-8601 with offset; `key` repeats the timestamp so
  same-day hourly points never collide client-side
- Every response that touched the datastore carries `stale` and `warnings`
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# VALUE SERIES
# =============================================================================

class ChangeMarkerResponse(BaseModel):
    """A position change overlaid on the chart."""

    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    username: str
    ticker: str
    shares: str = Field(..., description="Shares held after the change")
    change_amount: str = Field(..., description="Signed share delta")
    direction: str = Field(..., description="increase, decrease or unchanged")
    resolved_portfolio_value: str | None = Field(
        None,
        description="Series value interpolated at the change time"
    )


class SeriesPointResponse(BaseModel):
    """One chart point."""

    timestamp: datetime
    key: str = Field(..., description="ISO-8601 key including time of day")
    label: str = Field(..., description="Display label for the window")
    granularity: str = Field(..., description="hour, day, live or marker")
    value: str
    breakdown: dict[str, str] = Field(
        default_factory=dict,
        description="Per user or per asset type, depending on group_by"
    )
    is_live: bool = False
    is_marker_only: bool = False
    markers: list[ChangeMarkerResponse] = Field(default_factory=list)


class ValueSeriesResponse(BaseModel):
    """Chart series for one display window."""

    window: str
    group_by: str
    selected_users: list[str]
    asset_types: list[str]
    live_total: str | None = Field(
        None,
        description="Live total used as the final point (null when prices were unavailable)"
    )
    points: list[SeriesPointResponse]
    marker_count: int = 0
    dropped_rows: int = Field(0, description="Malformed or unknown-user rows skipped")
    generated_at: datetime
    stale: bool = False
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# DISTRIBUTIONS
# =============================================================================

class DistributionResponse(BaseModel):
    """
    Value breakdown by user and by stock.

    `snapped_week_start` is null for live distributions and when no weekly
    snapshot lies within tolerance of the requested date.
    """

    source: str = Field(..., description="'historical' or 'live'")
    requested_date: date | None = None
    snapped_week_start: date | None = None
    by_user: dict[str, str] = Field(default_factory=dict)
    by_stock: dict[str, str] = Field(default_factory=dict)
    stale: bool = False
    warnings: list[str] = Field(default_factory=list)


class AvailableDatesResponse(BaseModel):
    """Monday week starts that have weekly snapshots."""

    dates: list[date]
    count: int


class StockDistributionResponse(BaseModel):
    """How one ticker is split across users."""

    ticker: str
    price: str
    total_value: str
    by_user: dict[str, str]
    shares_by_user: dict[str, str]
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# SUMMARIES
# =============================================================================

class LiveSummaryResponse(BaseModel):
    """Live totals for the summary view."""

    total_value: str
    yearly_dividend: str = Field(..., description="Estimated annual dividend income")
    by_user: dict[str, str]
    by_asset_type: dict[str, str]
    by_stock: dict[str, str]
    generated_at: datetime
    stale: bool = False
    warnings: list[str] = Field(default_factory=list)


class UserTotalResponse(BaseModel):
    """Latest daily rollup for one user."""

    username: str
    snapshot_date: date
    stock: str
    cash: str
    real_estate: str
    crypto: str
    total_value: str


class UserTotalsResponse(BaseModel):
    totals: list[UserTotalResponse]
    grand_total: str


class KnownUsersResponse(BaseModel):
    users: list[str]


class RateLimitStatusResponse(BaseModel):
    """Datastore rate gate usage."""

    calls_in_window: int
    limit: int
    percentage: float = Field(..., description="Share of the window quota used (0-100)")
    is_limited: bool
    retry_after_seconds: int = Field(..., description="Seconds until the oldest call expires")
    total_calls: int
    rejected_calls: int
    datastore_reads: int
    cache_hits: int
    cache_misses: int

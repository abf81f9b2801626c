# backend/household_tracker/services/analytics/types.py
"""
Data types for the portfolio timeline engine.

All money and share amounts use Decimal. Every timestamp is timezone-aware
and expressed in the configured local timezone once it leaves the parsers.

Architecture:
    Enums:
        - CaptureType: HOURLY / DAILY / WEEKLY snapshot granularity
        - DisplayWindow: 1D, 1W, 1M, 3M, YTD, 1Y, ALL
        - AssetType: stocks / cash / realestate / crypto
        - GroupBy: series breakdown by user or by asset type
        - Granularity: hour / day bucket, live anchor, marker-only point
        - ChangeDirection: increase / decrease / unchanged
    Events (parsed from spreadsheet rows, immutable):
        - CurrentHolding, HoldingEvent, TotalValueEvent,
          DailyRollupEvent, PositionChangeEvent
    Results:
        - SeriesPoint, ChangeMarker, ValueSeries
        - HistoricalDistribution, LiveSummary, StockDistribution, UserTotal
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable

from household_tracker.services.constants import CASH_TICKERS, REAL_ESTATE_TICKERS
from household_tracker.services.exceptions import (
    InvalidAssetTypeError,
    InvalidGroupingError,
    InvalidWindowError,
)

ZERO = Decimal("0")


# =============================================================================
# ENUMS
# =============================================================================

class CaptureType(str, Enum):
    """Granularity label attached to a total-value snapshot."""
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class DisplayWindow(str, Enum):
    """Chart time window."""
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    YEAR_TO_DATE = "YTD"
    ONE_YEAR = "1Y"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: "str | DisplayWindow") -> "DisplayWindow":
        """
        Raises:
            InvalidWindowError: value is not a known window code
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        for window in cls:
            if window.value == normalized:
                return window
        raise InvalidWindowError(str(value), [w.value for w in cls])


class AssetType(str, Enum):
    """Asset classes a household tracks."""
    STOCKS = "stocks"
    CASH = "cash"
    REAL_ESTATE = "realestate"
    CRYPTO = "crypto"

    @classmethod
    def parse_many(cls, values: "Iterable[str | AssetType] | None") -> frozenset["AssetType"]:
        """
        Parse an asset-type filter; None means every asset type.

        Raises:
            InvalidAssetTypeError: a value is not a known asset type
        """
        if values is None:
            return ALL_ASSET_TYPES
        parsed = set()
        for value in values:
            if isinstance(value, cls):
                parsed.add(value)
                continue
            normalized = str(value).strip().lower().replace("_", "").replace(" ", "")
            match = next((a for a in cls if a.value == normalized), None)
            if match is None:
                raise InvalidAssetTypeError(str(value), [a.value for a in cls])
            parsed.add(match)
        return frozenset(parsed)


ALL_ASSET_TYPES: frozenset[AssetType] = frozenset(AssetType)


class GroupBy(str, Enum):
    """Breakdown attached to every series point."""
    USER = "user"
    ASSET_TYPE = "asset_type"

    @classmethod
    def parse(cls, value: "str | GroupBy") -> "GroupBy":
        """
        Raises:
            InvalidGroupingError: value is not a known grouping
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for group in cls:
            if group.value == normalized:
                return group
        raise InvalidGroupingError(str(value), [g.value for g in cls])


class Granularity(str, Enum):
    """What a series point stands for; lets clients format labels unambiguously."""
    HOUR = "hour"
    DAY = "day"
    LIVE = "live"
    MARKER = "marker"


class ChangeDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    UNCHANGED = "unchanged"


def classify_ticker(ticker: str, crypto_symbols: frozenset[str] = frozenset()) -> AssetType:
    """
    Asset type of a holdings ticker.

    Example:
        >>> classify_ticker("USD")
        <AssetType.CASH: 'cash'>
        >>> classify_ticker("BTC", frozenset({"BTC"}))
        <AssetType.CRYPTO: 'crypto'>
    """
    symbol = ticker.strip().upper()
    if symbol in CASH_TICKERS:
        return AssetType.CASH
    if symbol in REAL_ESTATE_TICKERS:
        return AssetType.REAL_ESTATE
    if symbol in crypto_symbols:
        return AssetType.CRYPTO
    return AssetType.STOCKS


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True)
class AssetValues:
    """
    Dollar value per asset class.

    Attributes:
        stock: Equities
        cash: Cash and USD balances
        real_estate: Real-estate equity
        crypto: Crypto holdings
    """
    stock: Decimal = ZERO
    cash: Decimal = ZERO
    real_estate: Decimal = ZERO
    crypto: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.stock + self.cash + self.real_estate + self.crypto

    def of(self, asset_type: AssetType) -> Decimal:
        return {
            AssetType.STOCKS: self.stock,
            AssetType.CASH: self.cash,
            AssetType.REAL_ESTATE: self.real_estate,
            AssetType.CRYPTO: self.crypto,
        }[asset_type]

    def value_for(self, asset_types: frozenset[AssetType]) -> Decimal:
        """Sum of the included asset classes; excluded classes contribute zero."""
        return sum((self.of(a) for a in asset_types), ZERO)

    def only(self, asset_types: frozenset[AssetType]) -> "AssetValues":
        """Copy with excluded asset classes zeroed."""
        return AssetValues(
            stock=self.stock if AssetType.STOCKS in asset_types else ZERO,
            cash=self.cash if AssetType.CASH in asset_types else ZERO,
            real_estate=self.real_estate if AssetType.REAL_ESTATE in asset_types else ZERO,
            crypto=self.crypto if AssetType.CRYPTO in asset_types else ZERO,
        )

    def __add__(self, other: "AssetValues") -> "AssetValues":
        return AssetValues(
            stock=self.stock + other.stock,
            cash=self.cash + other.cash,
            real_estate=self.real_estate + other.real_estate,
            crypto=self.crypto + other.crypto,
        )

    @classmethod
    def single(cls, asset_type: AssetType, amount: Decimal) -> "AssetValues":
        return {
            AssetType.STOCKS: cls(stock=amount),
            AssetType.CASH: cls(cash=amount),
            AssetType.REAL_ESTATE: cls(real_estate=amount),
            AssetType.CRYPTO: cls(crypto=amount),
        }[asset_type]


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class CurrentHolding:
    """One row of the current holdings sheet."""
    username: str
    ticker: str
    shares: Decimal
    last_updated: datetime | None = None


@dataclass(frozen=True)
class HoldingEvent:
    """
    Point-in-time holding from the holdings-history log.

    Edits append new events; history is never rewritten.
    """
    timestamp: datetime
    username: str
    ticker: str
    shares: Decimal
    chat_notes: str | None = None


@dataclass(frozen=True)
class TotalValueEvent:
    """
    Total portfolio value of one user captured at a point in time.

    Attributes:
        timestamp: Capture time (with time of day)
        username: Owner
        values: Value per asset class
        capture_type: HOURLY, DAILY or WEEKLY
    """
    timestamp: datetime
    username: str
    values: AssetValues
    capture_type: CaptureType

    @property
    def total_value(self) -> Decimal:
        return self.values.total


@dataclass(frozen=True)
class DailyRollupEvent:
    """Most recent known total per user, used to anchor stacked views."""
    username: str
    values: AssetValues
    snapshot_date: date


@dataclass(frozen=True)
class PositionChangeEvent:
    """
    A discrete holding edit.

    Attributes:
        change_amount: Signed share delta; None when the log has no usable amount
    """
    timestamp: datetime
    username: str
    ticker: str
    shares: Decimal
    change_amount: Decimal | None = None


# =============================================================================
# RESULTS - VALUE SERIES
# =============================================================================

@dataclass(frozen=True)
class ChangeMarker:
    """
    A position change overlaid on the value series.

    Attributes:
        timestamp: When the change happened
        username: Who changed the position
        ticker: Which position changed
        shares: Shares held after the change
        change_amount: Signed share delta
        resolved_portfolio_value: Series value interpolated at timestamp
    """
    timestamp: datetime
    username: str
    ticker: str
    shares: Decimal
    change_amount: Decimal
    resolved_portfolio_value: Decimal | None

    @property
    def direction(self) -> ChangeDirection:
        if self.change_amount > 0:
            return ChangeDirection.INCREASE
        if self.change_amount < 0:
            return ChangeDirection.DECREASE
        return ChangeDirection.UNCHANGED


@dataclass
class SeriesPoint:
    """
    One point of a value series.

    Attributes:
        timestamp: Bucket start (or the exact time for live and marker-only points)
        value: Summed value of the selected entities and asset types
        key: ISO-8601 text key including time of day; unique per point
        granularity: hour / day bucket, live anchor or marker-only point
        label: Display label formatted for the window
        breakdown: Entity (user or asset type) -> value
        markers: Position changes merged into this point
        is_live: The live anchor
        is_marker_only: Inserted only to carry markers
    """
    timestamp: datetime
    value: Decimal
    key: str
    granularity: Granularity
    label: str
    breakdown: dict[str, Decimal] = field(default_factory=dict)
    markers: list[ChangeMarker] = field(default_factory=list)
    is_live: bool = False
    is_marker_only: bool = False


@dataclass
class ValueSeries:
    """
    Chart-ready value series for one window.

    Attributes:
        window: Requested window
        points: Strictly ascending points; the live anchor is last when present
        selected_users: Users included in the sums
        asset_types: Asset classes included in the sums
        group_by: Breakdown dimension
        live_total: Live total used as the anchor (None if unavailable)
        generated_at: Time the series was computed
        stale: Some input came from an expired cache entry
        warnings: Stale-data notices and quote failures
        dropped_rows: Malformed or unknown-user rows skipped while parsing
    """
    window: "DisplayWindow"
    points: list[SeriesPoint]
    selected_users: list[str]
    asset_types: list[AssetType]
    group_by: GroupBy
    live_total: Decimal | None
    generated_at: datetime
    stale: bool = False
    warnings: list[str] = field(default_factory=list)
    dropped_rows: int = 0

    @property
    def marker_count(self) -> int:
        return sum(len(p.markers) for p in self.points)


# =============================================================================
# RESULTS - DISTRIBUTIONS AND SUMMARIES
# =============================================================================

@dataclass
class HistoricalDistribution:
    """
    Value breakdown as of a weekly snapshot.

    Attributes:
        requested_date: Date the caller asked for
        snapped_week_start: Monday of the snapshot used (None: nothing within tolerance)
        by_user: username -> total value
        by_stock: ticker -> value at current prices
    """
    requested_date: date
    snapped_week_start: date | None
    by_user: dict[str, Decimal] = field(default_factory=dict)
    by_stock: dict[str, Decimal] = field(default_factory=dict)
    stale: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.by_user and not self.by_stock


@dataclass
class LivePortfolio:
    """
    Current holdings valued at live prices.

    Attributes:
        by_user: username -> value per asset class
        by_ticker: ticker -> value across users
        by_user_ticker: (username, ticker) -> value
        yearly_dividend: Estimated annual dividend income
    """
    by_user: dict[str, AssetValues] = field(default_factory=dict)
    by_ticker: dict[str, Decimal] = field(default_factory=dict)
    by_user_ticker: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    yearly_dividend: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum((v.total for v in self.by_user.values()), ZERO)


@dataclass
class LiveSummary:
    """Live totals for the summary view."""
    total_value: Decimal
    by_user: dict[str, Decimal]
    by_asset_type: dict[str, Decimal]
    by_stock: dict[str, Decimal]
    yearly_dividend: Decimal
    generated_at: datetime
    stale: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class StockDistribution:
    """How one ticker is split across users."""
    ticker: str
    price: Decimal
    by_user: dict[str, Decimal]
    shares_by_user: dict[str, Decimal]
    total_value: Decimal
    warnings: list[str] = field(default_factory=list)


@dataclass
class UserTotal:
    """Latest daily rollup for one user, filtered by asset class."""
    username: str
    snapshot_date: date
    values: AssetValues
    total_value: Decimal

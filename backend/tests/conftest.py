# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- A controllable clock
- An in-memory tabular datastore with call counting and error injection
- A fake quote provider
- A fully wired AnalyticsService over the fakes
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from household_tracker.services.analytics.service import (
    AnalyticsConfig,
    AnalyticsService,
    RangeIds,
)
from household_tracker.services.datastore.gated import GatedRangeReader
from household_tracker.services.exceptions import QuoteLookupError
from household_tracker.services.market_data.base import Quote, QuoteProvider
from household_tracker.services.market_data.pricing import PriceResolver
from household_tracker.services.market_data.sheet_quotes import SheetQuoteProvider
from household_tracker.services.rate_gate import RangeCache, SlidingWindowRateGate

NEW_YORK = ZoneInfo("America/New_York")

# Friday afternoon; every engine test is anchored here unless it moves the clock
NOW = datetime(2024, 3, 15, 14, 30, tzinfo=NEW_YORK)

QUOTES_RANGE = "Sheet2!A1:P1000"
CRYPTO_RANGE = "Crypto!A1:E1000"

HEADERS = {
    RangeIds.holdings: ["Username", "Ticker", "Shares", "Last Updated"],
    RangeIds.holdings_history: ["Timestamp", "Username", "Ticker", "Shares", "Chat Notes"],
    RangeIds.total_values: [
        "Timestamp", "Username", "Stock", "Cash", "Real Estate", "Crypto", "Capture Type",
    ],
    RangeIds.daily_rollups: ["Username", "Stock", "Cash", "Real Estate", "Crypto", "Snapshot Date"],
    RangeIds.position_changes: ["Timestamp", "Username", "Ticker", "Shares", "Change Amount"],
    QUOTES_RANGE: [
        "Visual", "Symbol", "Name", "Price", "Currency", "Change", "Change %", "Open",
        "High", "Low", "52W High", "52W Low", "Volume", "Market Cap", "P/E", "Beta",
    ],
    CRYPTO_RANGE: ["Symbol", "Name", "Price USD"],
}


# =============================================================================
# FAKES
# =============================================================================

class FakeClock:
    """Clock whose wall time and monotonic time move only when told to."""

    def __init__(self, start: datetime = NOW):
        self._now = start
        self._monotonic = 1000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._monotonic += seconds

    def set(self, when: datetime) -> None:
        self._now = when


class FakeDatastore:
    """
    In-memory datastore.

    Every range starts with its header row. Tests append data rows with
    `add_rows` and inject failures with `fail_with`.
    """

    def __init__(self):
        self.ranges: dict[str, list[list[str]]] = {
            range_id: [list(header)] for range_id, header in HEADERS.items()
        }
        self.calls: list[str] = []
        self.errors: dict[str, Exception] = {}

    @property
    def name(self) -> str:
        return "fake"

    def add_rows(self, range_id: str, *rows: list[str]) -> None:
        self.ranges.setdefault(range_id, [list(HEADERS.get(range_id, []))])
        self.ranges[range_id].extend([str(cell) for cell in row] for row in rows)

    def fail_with(self, range_id: str, error: Exception | None) -> None:
        if error is None:
            self.errors.pop(range_id, None)
        else:
            self.errors[range_id] = error

    async def read_range(self, range_id: str) -> list[list[str]]:
        self.calls.append(range_id)
        if range_id in self.errors:
            raise self.errors[range_id]
        return [list(row) for row in self.ranges.get(range_id, [])]


class FakeQuoteProvider(QuoteProvider):
    """Quote provider answering from a dict; unknown tickers raise QuoteLookupError."""

    def __init__(self, prices: dict[str, Decimal] | None = None):
        self.prices = dict(prices or {})
        self.requested: list[str] = []

    @property
    def name(self) -> str:
        return "fake"

    async def get_quote(self, ticker: str) -> Quote:
        symbol = ticker.strip().upper()
        self.requested.append(symbol)
        if symbol not in self.prices:
            raise QuoteLookupError(symbol, self.name, reason="unknown")
        return Quote(ticker=symbol, price=self.prices[symbol], source=self.name)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def tz() -> ZoneInfo:
    return NEW_YORK


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def datastore() -> FakeDatastore:
    return FakeDatastore()


@pytest.fixture
def gate(clock) -> SlidingWindowRateGate:
    return SlidingWindowRateGate(max_calls=50, window_seconds=60, clock=clock, name="datastore")


@pytest.fixture
def cache(clock) -> RangeCache:
    return RangeCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def reader(datastore, gate, cache) -> GatedRangeReader:
    return GatedRangeReader(datastore=datastore, gate=gate, cache=cache)


@pytest.fixture
def sheet_quotes(reader) -> SheetQuoteProvider:
    return SheetQuoteProvider(reader, quotes_range=QUOTES_RANGE, crypto_range=CRYPTO_RANGE)


@pytest.fixture
def fallback_quotes() -> FakeQuoteProvider:
    """Empty fake provider; tests fill `.prices`."""
    return FakeQuoteProvider()


@pytest.fixture
def analytics_config(tz) -> AnalyticsConfig:
    return AnalyticsConfig(tz=tz)


@pytest.fixture
def analytics_service(reader, sheet_quotes, analytics_config, clock) -> AnalyticsService:
    """AnalyticsService over the fake datastore, priced from the quote sheets only."""
    return AnalyticsService(
        reader=reader,
        price_resolver=PriceResolver(sheet_quotes),
        config=analytics_config,
        clock=clock,
    )

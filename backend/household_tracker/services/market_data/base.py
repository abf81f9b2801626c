# backend/household_tracker/services/market_data/base.py
"""
Abstract interface for live quote sources.

Two sources exist: the quote sheet that spreadsheet finance formulas keep
current (primary), and Yahoo Finance (optional fallback for tickers the
sheet does not carry). Both satisfy the same contract so pricing code
never cares where a price came from.

Design Principles:
- Interface Segregation: one lookup method, batch built on top of it
- Partial failure: a batch lookup never fails as a whole
- DRY: retry logic implemented once in the base class
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_tracker.services.exceptions import MarketDataError, QuoteLookupError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """
    Latest price information for one ticker.

    Attributes:
        ticker: Symbol, uppercase (e.g., "AAPL", "BTC")
        price: Last price in USD
        source: Quote source name ("sheet", "crypto-sheet", "yahoo")
        name: Company or coin name
        currency: Trading currency
        change: Absolute change since previous close
        change_percent: Percentage change since previous close
        previous_close: price - change
        day_high: Intraday high
        day_low: Intraday low
        volume: Shares traded today
        dividend_yield: Annual dividend yield in percent (2.5 means 2.5%)
    """

    ticker: str
    price: Decimal
    source: str
    name: str | None = None
    currency: str = "USD"
    change: Decimal = Decimal("0")
    change_percent: Decimal = Decimal("0")
    previous_close: Decimal | None = None
    day_high: Decimal | None = None
    day_low: Decimal | None = None
    volume: Decimal | None = None
    dividend_yield: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not self.ticker:
            raise ValueError("ticker is required")


@dataclass
class BatchQuoteResult:
    """
    Result of looking up several tickers.

    Attributes:
        successful: ticker -> Quote
        failed: ticker -> exception raised for that ticker
    """

    successful: dict[str, Quote] = field(default_factory=dict)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def all_successful(self) -> bool:
        return not self.failed


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class QuoteProvider(ABC):
    """
    Base class for live quote sources.

    Retry Behavior:
        `_execute_with_retry` retries MarketDataError subclasses other than
        QuoteLookupError (unknown tickers are permanent) with exponential
        backoff. Class attributes tune the policy.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and Quote.source."""

    @abstractmethod
    async def get_quote(self, ticker: str) -> Quote:
        """
        Fetch the latest quote for a ticker.

        Raises:
            QuoteLookupError: Ticker unknown or has no usable price
            MarketDataError: Transient provider failure
        """

    async def get_quotes(self, tickers: list[str]) -> BatchQuoteResult:
        """
        Look up several tickers concurrently; failures are collected, not raised.
        """
        unique = sorted({t.strip().upper() for t in tickers if t and t.strip()})
        outcomes = await asyncio.gather(
            *(self.get_quote(ticker) for ticker in unique),
            return_exceptions=True,
        )

        result = BatchQuoteResult()
        for ticker, outcome in zip(unique, outcomes):
            if isinstance(outcome, Quote):
                result.successful[ticker] = outcome
            elif isinstance(outcome, Exception):
                logger.warning(f"{self.name}: quote lookup failed for {ticker}: {outcome}")
                result.failed[ticker] = outcome
            else:
                raise outcome
        return result

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Call a blocking function with exponential backoff on transient errors.

        Raises:
            The last exception if all retries fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=(
                retry_if_exception_type(MarketDataError)
                & retry_if_not_exception_type(QuoteLookupError)
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()

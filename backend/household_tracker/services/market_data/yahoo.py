# backend/household_tracker/services/market_data/yahoo.py
"""
Yahoo Finance quote provider.

Fallback for tickers that are missing from the quote sheet. yfinance is
a blocking library, so lookups run in a worker thread via
asyncio.to_thread; retries use the base-class tenacity policy.

Limitations:
- Rate limits exist but are not documented
- Quotes may be delayed 15-20 minutes
"""

import asyncio
import logging
import math
from decimal import Decimal
from typing import Any

import yfinance as yf

from household_tracker.services.exceptions import (
    ProviderUnavailableError,
    QuoteLookupError,
)
from household_tracker.services.market_data.base import Quote, QuoteProvider

logger = logging.getLogger(__name__)


class YahooFinanceQuoteProvider(QuoteProvider):
    """
    Live quotes from Yahoo Finance.

    Retry Behavior (inherited from QuoteProvider):
        - Retries on ProviderUnavailableError
        - Does NOT retry on QuoteLookupError (unknown ticker)

    Example:
        provider = YahooFinanceQuoteProvider()
        quote = await provider.get_quote("AAPL")
    """

    # Price fields in order of preference
    PRICE_FIELDS: tuple[str, ...] = ("regularMarketPrice", "currentPrice", "previousClose")

    @property
    def name(self) -> str:
        return "yahoo"

    async def get_quote(self, ticker: str) -> Quote:
        symbol = ticker.strip().upper()
        return await asyncio.to_thread(self._execute_with_retry, self._fetch_quote, symbol)

    def _fetch_quote(self, symbol: str) -> Quote:
        """Blocking lookup (called by the retry wrapper)."""
        logger.debug(f"Fetching Yahoo quote for {symbol}")

        try:
            info = yf.Ticker(symbol).info
        except Exception as e:
            error_str = str(e).lower()
            if "not found" in error_str or "no data" in error_str:
                raise QuoteLookupError(symbol, self.name, reason=str(e)) from e
            if "rate limit" in error_str or "too many requests" in error_str:
                raise ProviderUnavailableError(self.name, reason="rate limited") from e
            logger.error(f"Yahoo Finance error for {symbol}: {e}")
            raise ProviderUnavailableError(self.name, reason=str(e)) from e

        price = self._first_number(info, self.PRICE_FIELDS)
        if price is None or price <= 0:
            raise QuoteLookupError(symbol, self.name, reason="no price in response")

        previous_close = self._first_number(info, ("previousClose", "regularMarketPreviousClose"))
        change = price - previous_close if previous_close is not None else Decimal("0")
        change_percent = (
            change / previous_close * 100
            if previous_close not in (None, Decimal("0"))
            else Decimal("0")
        )

        return Quote(
            ticker=symbol,
            price=price,
            source=self.name,
            name=info.get("longName") or info.get("shortName"),
            currency=(info.get("currency") or "USD").upper(),
            change=change,
            change_percent=change_percent,
            previous_close=previous_close,
            day_high=self._first_number(info, ("dayHigh", "regularMarketDayHigh")),
            day_low=self._first_number(info, ("dayLow", "regularMarketDayLow")),
            volume=self._first_number(info, ("volume", "regularMarketVolume")),
            dividend_yield=self._first_number(info, ("dividendYield",)) or Decimal("0"),
        )

    @staticmethod
    def _first_number(info: dict[str, Any], fields: tuple[str, ...]) -> Decimal | None:
        """First finite numeric value among fields, as Decimal."""
        for name in fields:
            value = info.get(name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if math.isnan(value) or math.isinf(value):
                continue
            return Decimal(str(value))
        return None

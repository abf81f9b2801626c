# backend/household_tracker/services/market_data/pricing.py
"""
Current-price resolution for holdings.

Pricing rules, in order:
    1. CASH / USD / REAL ESTATE  -> fixed unit price 1.0 (shares are dollars)
    2. Symbols on the crypto sheet -> crypto sheet price
    3. Symbols on the quote sheet  -> quote sheet price
    4. Anything else               -> fallback provider (Yahoo) when enabled
    5. Still unresolved            -> 0, with a warning

A failed lookup never fails the computation: the ticker contributes 0
and the warning travels with the result.

Usage:
    resolver = PriceResolver(sheet_provider, fallback=yahoo_provider)
    book = await resolver.build(["AAPL", "CASH", "BTC"])
    book.price_of("AAPL")
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from household_tracker.services.constants import FIXED_PRICE_TICKERS
from household_tracker.services.market_data.base import QuoteProvider
from household_tracker.services.market_data.sheet_quotes import SheetQuoteProvider

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class PriceBook:
    """
    Resolved current prices for one request.

    Attributes:
        prices: ticker -> unit price (0 for unresolved tickers)
        dividend_yields: ticker -> annual yield in percent
        sources: ticker -> where the price came from ("fixed", "sheet", "yahoo", "missing")
        crypto_symbols: Symbols listed on the crypto sheet
        stale: Quote sheets were served from an expired cache entry
        warnings: Lookup failures and stale-data notices
    """

    prices: dict[str, Decimal] = field(default_factory=dict)
    dividend_yields: dict[str, Decimal] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)
    crypto_symbols: frozenset[str] = frozenset()
    stale: bool = False
    warnings: list[str] = field(default_factory=list)

    def price_of(self, ticker: str) -> Decimal:
        return self.prices.get(ticker.strip().upper(), ZERO)

    def dividend_yield_of(self, ticker: str) -> Decimal:
        return self.dividend_yields.get(ticker.strip().upper(), ZERO)

    @property
    def missing(self) -> list[str]:
        return sorted(t for t, source in self.sources.items() if source == "missing")


class PriceResolver:
    """
    Builds PriceBooks from the quote sheets plus an optional fallback provider.

    Args:
        sheet: Quote-sheet provider (primary)
        fallback: Provider consulted for tickers the sheets do not price
    """

    def __init__(self, sheet: SheetQuoteProvider, fallback: QuoteProvider | None = None) -> None:
        self._sheet = sheet
        self._fallback = fallback

    async def build(self, tickers: Iterable[str], force_refresh: bool = False) -> PriceBook:
        """
        Resolve a price for every ticker.

        Raises:
            RateLimitError / DatastoreUnavailableError: Quote sheets unreadable with nothing cached
        """
        quote_book = await self._sheet.load_book(force_refresh=force_refresh)
        book = PriceBook(
            crypto_symbols=quote_book.crypto_symbols,
            stale=bool(quote_book.warnings),
            warnings=list(quote_book.warnings),
        )

        unresolved: list[str] = []
        for ticker in sorted({t.strip().upper() for t in tickers if t and t.strip()}):
            if ticker in FIXED_PRICE_TICKERS:
                book.prices[ticker] = FIXED_PRICE_TICKERS[ticker]
                book.sources[ticker] = "fixed"
                continue

            quote = quote_book.lookup(ticker)
            if quote is not None and quote.price > 0:
                book.prices[ticker] = quote.price
                book.dividend_yields[ticker] = quote.dividend_yield
                book.sources[ticker] = quote.source
            else:
                unresolved.append(ticker)

        if unresolved and self._fallback is not None:
            result = await self._fallback.get_quotes(unresolved)
            for ticker, quote in result.successful.items():
                book.prices[ticker] = quote.price
                book.dividend_yields[ticker] = quote.dividend_yield
                book.sources[ticker] = quote.source
            unresolved = sorted(result.failed)

        for ticker in unresolved:
            book.prices[ticker] = ZERO
            book.sources[ticker] = "missing"
            book.warnings.append(f"No live price for {ticker}; valued at 0")
            logger.warning(f"No live price for {ticker}; valued at 0")

        return book

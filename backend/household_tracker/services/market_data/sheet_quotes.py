# backend/household_tracker/services/market_data/sheet_quotes.py
"""
Quotes read from the spreadsheet itself.

The spreadsheet keeps two quote tabs current with finance formulas:

    Quote sheet (A:P):  Visual Symbol, Symbol, Name, Price, Currency,
                        Change $, Change %, Open, High, Low, 52W High,
                        52W Low, Volume, Market Cap, P/E, Beta
    Crypto sheet (A:C): Symbol, Name, Price USD

Both are read through the GatedRangeReader, so quote lookups share the
datastore rate gate and range cache with every other read. A ticker
matches a quote row by its symbol or its visual symbol.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from household_tracker.services.constants import CRYPTO_COLUMNS, HEADER_ROWS, QUOTE_COLUMNS
from household_tracker.services.datastore.gated import GatedRangeReader
from household_tracker.services.exceptions import QuoteLookupError
from household_tracker.services.market_data.base import BatchQuoteResult, Quote, QuoteProvider
from household_tracker.utils.parsing import parse_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuoteBook:
    """
    Parsed contents of the quote sheets for one request.

    Attributes:
        equities: symbol -> Quote (visual symbols included as aliases)
        crypto: symbol -> Quote
        warnings: Stale-data warnings raised while reading the sheets
    """

    equities: dict[str, Quote] = field(default_factory=dict)
    crypto: dict[str, Quote] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @property
    def crypto_symbols(self) -> frozenset[str]:
        return frozenset(self.crypto)

    def lookup(self, ticker: str) -> Quote | None:
        """Crypto quote for crypto symbols, else the equity quote."""
        symbol = ticker.strip().upper()
        return self.crypto.get(symbol) or self.equities.get(symbol)


def _cell(row: Sequence[str], index: int) -> str:
    return row[index].strip() if index < len(row) else ""


def parse_quote_rows(rows: Sequence[Sequence[str]]) -> dict[str, Quote]:
    """
    Parse the equity quote sheet into symbol -> Quote.

    Rows without a symbol are skipped; missing numbers read as 0.
    """
    quotes: dict[str, Quote] = {}
    for row in rows[HEADER_ROWS:]:
        symbol = _cell(row, QUOTE_COLUMNS["symbol"]).upper()
        visual = _cell(row, QUOTE_COLUMNS["visual_symbol"]).upper()
        if not symbol and not visual:
            continue

        price = parse_decimal(_cell(row, QUOTE_COLUMNS["price"]))
        change = parse_decimal(_cell(row, QUOTE_COLUMNS["change"]))
        quote = Quote(
            ticker=symbol or visual,
            price=price,
            source="sheet",
            name=_cell(row, QUOTE_COLUMNS["name"]) or None,
            currency=_cell(row, QUOTE_COLUMNS["currency"]) or "USD",
            change=change,
            change_percent=parse_decimal(_cell(row, QUOTE_COLUMNS["change_percent"])),
            previous_close=price - change,
            day_high=parse_decimal(_cell(row, QUOTE_COLUMNS["day_high"])),
            day_low=parse_decimal(_cell(row, QUOTE_COLUMNS["day_low"])),
            volume=parse_decimal(_cell(row, QUOTE_COLUMNS["volume"])),
        )
        for key in (symbol, visual):
            if key:
                quotes.setdefault(key, quote)
    return quotes


def parse_crypto_rows(rows: Sequence[Sequence[str]]) -> dict[str, Quote]:
    """Parse the crypto sheet into symbol -> Quote."""
    quotes: dict[str, Quote] = {}
    for row in rows[HEADER_ROWS:]:
        symbol = _cell(row, CRYPTO_COLUMNS["symbol"]).upper()
        if not symbol:
            continue
        quotes[symbol] = Quote(
            ticker=symbol,
            price=parse_decimal(_cell(row, CRYPTO_COLUMNS["price_usd"])),
            source="crypto-sheet",
            name=_cell(row, CRYPTO_COLUMNS["name"]) or None,
        )
    return quotes


class SheetQuoteProvider(QuoteProvider):
    """
    Quote provider backed by the quote and crypto sheets.

    Args:
        reader: Gated range reader shared with the rest of the engine
        quotes_range: A1 range of the equity quote sheet
        crypto_range: A1 range of the crypto sheet

    Example:
        provider = SheetQuoteProvider(reader, "Sheet2!A1:P1000", "Crypto!A1:E1000")
        book = await provider.load_book()
        book.lookup("AAPL").price
    """

    def __init__(self, reader: GatedRangeReader, quotes_range: str, crypto_range: str) -> None:
        self._reader = reader
        self._quotes_range = quotes_range
        self._crypto_range = crypto_range

    @property
    def name(self) -> str:
        return "sheet"

    async def load_book(self, force_refresh: bool = False) -> QuoteBook:
        """
        Read and parse both quote sheets.

        Raises:
            RateLimitError / DatastoreUnavailableError: Read failed with nothing cached
        """
        quotes_snapshot, crypto_snapshot = await asyncio.gather(
            self._reader.read(self._quotes_range, force_refresh=force_refresh),
            self._reader.read(self._crypto_range, force_refresh=force_refresh),
        )
        warnings = tuple(
            snapshot.warning
            for snapshot in (quotes_snapshot, crypto_snapshot)
            if snapshot.stale and snapshot.warning
        )
        book = QuoteBook(
            equities=parse_quote_rows(quotes_snapshot.rows),
            crypto=parse_crypto_rows(crypto_snapshot.rows),
            warnings=warnings,
        )
        logger.debug(
            f"Quote book loaded: {len(book.equities)} equity keys, {len(book.crypto)} crypto"
        )
        return book

    async def get_quote(self, ticker: str) -> Quote:
        book = await self.load_book()
        quote = book.lookup(ticker)
        if quote is None:
            raise QuoteLookupError(ticker.strip().upper(), self.name, reason="not on quote sheets")
        return quote

    async def get_quotes(self, tickers: list[str]) -> BatchQuoteResult:
        """Load the sheets once and resolve every ticker from the same book."""
        book = await self.load_book()
        result = BatchQuoteResult()
        for ticker in sorted({t.strip().upper() for t in tickers if t and t.strip()}):
            quote = book.lookup(ticker)
            if quote is None:
                result.failed[ticker] = QuoteLookupError(ticker, self.name, reason="not on quote sheets")
            else:
                result.successful[ticker] = quote
        return result

# backend/household_tracker/services/market_data/__init__.py
"""
Live quote sources and current-price resolution.

- base: Quote dataclass and QuoteProvider interface
- sheet_quotes: Quote and crypto sheets (primary source)
- yahoo: Yahoo Finance fallback
- pricing: PriceResolver / PriceBook with fixed-price and crypto rules
"""

from household_tracker.services.market_data.base import BatchQuoteResult, Quote, QuoteProvider
from household_tracker.services.market_data.pricing import PriceBook, PriceResolver
from household_tracker.services.market_data.sheet_quotes import QuoteBook, SheetQuoteProvider
from household_tracker.services.market_data.yahoo import YahooFinanceQuoteProvider

__all__ = [
    "Quote",
    "QuoteProvider",
    "BatchQuoteResult",
    "QuoteBook",
    "SheetQuoteProvider",
    "YahooFinanceQuoteProvider",
    "PriceBook",
    "PriceResolver",
]

# backend/household_tracker/services/constants.py
"""
Centralized constants for the Household Portfolio Tracker services.

Business constants that are not deployment-specific live here; anything
an operator may want to tune per environment lives in config.Settings.

Usage:
    from household_tracker.services.constants import (
        FIXED_PRICE_TICKERS,
        QUOTE_COLUMNS,
        RATE_LIMIT_ANALYTICS,
    )
"""

from decimal import Decimal


# =============================================================================
# SPREADSHEET CONVENTIONS
# =============================================================================

# Every range returned by the datastore starts with a header row
HEADER_ROWS: int = 1

# Strings a spreadsheet cell uses for "no number"
EMPTY_NUMBER_MARKERS: frozenset[str] = frozenset({"", "-", "N/A", "#N/A", "NAN"})


# =============================================================================
# PRICING RULES
# =============================================================================

# Tickers whose "shares" are already a currency amount
CASH_TICKERS: frozenset[str] = frozenset({"CASH", "USD"})
REAL_ESTATE_TICKERS: frozenset[str] = frozenset({"REAL ESTATE"})

# Unit price for tickers that are never looked up
FIXED_PRICE_TICKERS: dict[str, Decimal] = {
    ticker: Decimal("1") for ticker in CASH_TICKERS | REAL_ESTATE_TICKERS
}


# =============================================================================
# QUOTE SHEET LAYOUT (Sheet2, filled by spreadsheet finance formulas)
# =============================================================================

QUOTE_COLUMNS: dict[str, int] = {
    "visual_symbol": 0,
    "symbol": 1,
    "name": 2,
    "price": 3,
    "currency": 4,
    "change": 5,
    "change_percent": 6,
    "open": 7,
    "day_high": 8,
    "day_low": 9,
    "week52_high": 10,
    "week52_low": 11,
    "volume": 12,
    "market_cap": 13,
    "pe_ratio": 14,
    "beta": 15,
}

CRYPTO_COLUMNS: dict[str, int] = {
    "symbol": 0,
    "name": 1,
    "price_usd": 2,
}


# =============================================================================
# ENGINE CONSTANTS
# =============================================================================

# Windows that overlay position-change markers on the value series
MARKER_WINDOWS: frozenset[str] = frozenset({"1D", "1W", "1M"})

# Output labels per window (strftime)
WINDOW_LABEL_FORMATS: dict[str, str] = {
    "1D": "%H:%M",
    "1W": "%a %b %d",
    "1M": "%b %d",
    "3M": "%b %d",
    "YTD": "%b %d",
    "1Y": "%b %d",
    "ALL": "%b %Y",
}

# Percentage divisor for dividend yield columns (yield is stored as 2.5 for 2.5%)
PERCENT: Decimal = Decimal("100")


# =============================================================================
# API RATE LIMITS (per client IP, slowapi syntax)
# =============================================================================

# Catch-all default for every route
RATE_LIMIT_DEFAULT: str = "100/minute"

# Analytics endpoints fan out to several datastore reads per request
RATE_LIMIT_ANALYTICS: str = "30/minute"

# Health checks are cheap and polled by orchestrators
RATE_LIMIT_HEALTH: str = "300/minute"

# backend/household_tracker/services/analytics/live.py
"""
Live portfolio valuation: current holdings x current prices.
"""

from decimal import Decimal
from typing import Iterable

from household_tracker.services.analytics.types import (
    AssetValues,
    CurrentHolding,
    LivePortfolio,
    classify_ticker,
)
from household_tracker.services.constants import PERCENT
from household_tracker.services.market_data.pricing import PriceBook

ZERO = Decimal("0")


def value_holdings(
        holdings: Iterable[CurrentHolding],
        prices: PriceBook,
        selected_users: frozenset[str] | None = None,
) -> LivePortfolio:
    """
    Value current holdings at live prices.

    Duplicate (user, ticker) rows are summed. Tickers without a price
    contribute 0.

    Args:
        holdings: Parsed current-holdings rows
        prices: Resolved prices for every held ticker
        selected_users: Users to include (None: everyone)
    """
    shares: dict[tuple[str, str], Decimal] = {}
    for holding in holdings:
        if selected_users is not None and holding.username not in selected_users:
            continue
        key = (holding.username, holding.ticker)
        shares[key] = shares.get(key, ZERO) + holding.shares

    portfolio = LivePortfolio()
    for (username, ticker), count in sorted(shares.items()):
        value = count * prices.price_of(ticker)
        asset_type = classify_ticker(ticker, prices.crypto_symbols)

        portfolio.by_user_ticker[(username, ticker)] = value
        portfolio.by_ticker[ticker] = portfolio.by_ticker.get(ticker, ZERO) + value
        portfolio.by_user[username] = (
            portfolio.by_user.get(username, AssetValues()) + AssetValues.single(asset_type, value)
        )
        portfolio.yearly_dividend += value * prices.dividend_yield_of(ticker) / PERCENT

    return portfolio

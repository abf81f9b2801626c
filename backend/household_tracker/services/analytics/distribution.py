# backend/household_tracker/services/analytics/distribution.py
"""
Historical distribution resolver.

Answers "how was the household split on date X" from the weekly
snapshots:

    1. Available dates: Monday week starts of WEEKLY total-value events
    2. Snap the requested date to the nearest week start (ties: earlier)
    3. By user: latest WEEKLY event per user within +/- weekly_match_days
    4. By stock: latest holding per (user, ticker) within the same window,
       valued at current prices and summed per ticker

A requested date further than snap_tolerance_days from every week start
yields an empty distribution.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable

from household_tracker.services.analytics.types import (
    ALL_ASSET_TYPES,
    AssetType,
    CaptureType,
    HistoricalDistribution,
    HoldingEvent,
    TotalValueEvent,
    classify_ticker,
)
from household_tracker.utils.date_utils import instant, week_start

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class HistoricalDistributionResolver:
    """
    Args:
        weekly_match_days: Events this many days either side of the
            snapped week start count as that week's snapshot
        snap_tolerance_days: Maximum distance between the requested date
            and the snapped week start
    """

    def __init__(self, weekly_match_days: int = 3, snap_tolerance_days: int = 7) -> None:
        self.weekly_match_days = weekly_match_days
        self.snap_tolerance_days = snap_tolerance_days

    @staticmethod
    def available_dates(events: Iterable[TotalValueEvent]) -> list[date]:
        """Distinct Monday week starts of WEEKLY snapshots, ascending."""
        return sorted({
            week_start(event.timestamp.date())
            for event in events
            if event.capture_type == CaptureType.WEEKLY
        })

    def snap(self, requested: date, available: list[date]) -> date | None:
        """
        Nearest available week start; the earlier one on a tie.

        Example:
            >>> resolver.snap(date(2024, 1, 4), [date(2024, 1, 1), date(2024, 1, 8)])
            date(2024, 1, 1)
        """
        if not available:
            return None
        nearest = min(available, key=lambda d: (abs((d - requested).days), d))
        if abs((nearest - requested).days) > self.snap_tolerance_days:
            return None
        return nearest

    def _near(self, d: date, snapped: date) -> bool:
        return abs((d - snapped).days) <= self.weekly_match_days

    def resolve(
            self,
            requested: date | None,
            total_values: list[TotalValueEvent],
            holdings: Iterable[HoldingEvent],
            price_of: Callable[[str], Decimal],
            selected_users: frozenset[str],
            asset_types: frozenset[AssetType] = ALL_ASSET_TYPES,
            crypto_symbols: frozenset[str] = frozenset(),
    ) -> HistoricalDistribution | None:
        """
        Distribution as of the snapshot nearest to requested.

        Args:
            requested: Date to resolve; None means "use live data" and returns None
            total_values: Parsed total-value events
            holdings: Parsed holdings-history events
            price_of: ticker -> current unit price
            selected_users: Users to include
            asset_types: Asset classes to include
            crypto_symbols: Symbols classified as crypto
        """
        if requested is None:
            return None

        snapped = self.snap(requested, self.available_dates(total_values))
        if snapped is None:
            logger.info(f"No weekly snapshot within {self.snap_tolerance_days} days of {requested}")
            return HistoricalDistribution(requested_date=requested, snapped_week_start=None)

        latest_by_user: dict[str, TotalValueEvent] = {}
        for event in total_values:
            if (
                event.capture_type != CaptureType.WEEKLY
                or event.username not in selected_users
                or not self._near(event.timestamp.date(), snapped)
            ):
                continue
            kept = latest_by_user.get(event.username)
            if kept is None or instant(event.timestamp) >= instant(kept.timestamp):
                latest_by_user[event.username] = event

        latest_by_position: dict[tuple[str, str], HoldingEvent] = {}
        for event in holdings:
            if event.username not in selected_users or not self._near(event.timestamp.date(), snapped):
                continue
            key = (event.username, event.ticker)
            kept = latest_by_position.get(key)
            if kept is None or instant(event.timestamp) >= instant(kept.timestamp):
                latest_by_position[key] = event

        by_stock: dict[str, Decimal] = {}
        for (_, ticker), event in latest_by_position.items():
            if event.shares == 0 or classify_ticker(ticker, crypto_symbols) not in asset_types:
                continue
            by_stock[ticker] = by_stock.get(ticker, ZERO) + event.shares * price_of(ticker)

        return HistoricalDistribution(
            requested_date=requested,
            snapped_week_start=snapped,
            by_user={
                username: event.values.value_for(asset_types)
                for username, event in sorted(latest_by_user.items())
            },
            by_stock=dict(sorted(by_stock.items(), key=lambda item: item[1], reverse=True)),
        )

# backend/household_tracker/services/analytics/markers.py
"""
Position-change correlation.

Overlays position changes on a value series (1D, 1W and 1M only). Each
change gets the portfolio value interpolated at the moment it happened:

    value(t) = before + (t - t_before) / (t_after - t_before) * (after - before)

Outside the series the nearest endpoint value is used. A change within
`merge_seconds` of an existing point joins that point's markers;
otherwise a marker-only point is inserted at the change time.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from household_tracker.services.analytics.bucketing import window_floor
from household_tracker.services.analytics.series import make_point
from household_tracker.services.analytics.types import (
    AssetType,
    ChangeMarker,
    DisplayWindow,
    Granularity,
    PositionChangeEvent,
    SeriesPoint,
    classify_ticker,
)
from household_tracker.services.constants import MARKER_WINDOWS
from household_tracker.utils.date_utils import instant

logger = logging.getLogger(__name__)


def supports_markers(window: DisplayWindow) -> bool:
    return window.value in MARKER_WINDOWS


def _micros(delta) -> int:
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def interpolate_value(points: list[SeriesPoint], timestamp: datetime) -> Decimal | None:
    """
    Portfolio value at timestamp, linearly interpolated between the
    surrounding points and clamped to the endpoints.

    Marker-only points are ignored. Returns None for an empty series.
    """
    anchors = [p for p in points if not p.is_marker_only]
    if not anchors:
        return None
    moment = instant(timestamp)
    if moment <= instant(anchors[0].timestamp):
        return anchors[0].value
    if moment >= instant(anchors[-1].timestamp):
        return anchors[-1].value

    for before, after in zip(anchors, anchors[1:]):
        start, end = instant(before.timestamp), instant(after.timestamp)
        if start <= moment <= end:
            span = _micros(end - start)
            if span == 0:
                return after.value
            fraction = Decimal(_micros(moment - start)) / Decimal(span)
            return before.value + fraction * (after.value - before.value)

    return anchors[-1].value


class PositionChangeCorrelator:
    """
    Attaches ChangeMarkers to series points.

    Args:
        merge_seconds: Maximum distance between a change and a point for
            the change to join that point

    Example:
        correlator = PositionChangeCorrelator(merge_seconds=60)
        points = correlator.overlay(points, changes, DisplayWindow.ONE_DAY, now,
                                    users, asset_types, crypto_symbols)
    """

    def __init__(self, merge_seconds: int = 60) -> None:
        self.merge_seconds = merge_seconds

    def select_changes(
            self,
            changes: Iterable[PositionChangeEvent],
            window: DisplayWindow,
            now: datetime,
            selected_users: frozenset[str],
            asset_types: frozenset[AssetType],
            crypto_symbols: frozenset[str] = frozenset(),
    ) -> list[PositionChangeEvent]:
        """Changes that belong on the chart, oldest first."""
        floor = window_floor(window, now)
        selected = [
            change for change in changes
            if change.change_amount is not None
            and change.username in selected_users
            and classify_ticker(change.ticker, crypto_symbols) in asset_types
            and instant(floor) <= instant(change.timestamp) <= instant(now)
        ]
        selected.sort(key=lambda c: instant(c.timestamp))
        return selected

    def overlay(
            self,
            points: list[SeriesPoint],
            changes: Iterable[PositionChangeEvent],
            window: DisplayWindow,
            now: datetime,
            selected_users: frozenset[str],
            asset_types: frozenset[AssetType],
            crypto_symbols: frozenset[str] = frozenset(),
    ) -> list[SeriesPoint]:
        """
        Return the points with markers attached, sorted by timestamp.

        Windows without markers and empty series are returned unchanged.
        """
        if not supports_markers(window) or not points:
            return points

        result = list(points)
        selected = self.select_changes(
            changes, window, now, selected_users, asset_types, crypto_symbols
        )

        for change in selected:
            resolved = interpolate_value(points, change.timestamp)
            marker = ChangeMarker(
                timestamp=change.timestamp,
                username=change.username,
                ticker=change.ticker,
                shares=change.shares,
                change_amount=change.change_amount,
                resolved_portfolio_value=resolved,
            )

            target = self._nearest_within(result, change.timestamp)
            if target is None:
                target = make_point(
                    change.timestamp,
                    resolved if resolved is not None else Decimal("0"),
                    window,
                    Granularity.MARKER,
                )
                result.append(target)
                result.sort(key=lambda p: (instant(p.timestamp), p.is_live))
            target.markers.append(marker)

        if selected:
            logger.debug(f"Attached {len(selected)} position-change markers ({window.value})")
        return result

    def _nearest_within(self, points: list[SeriesPoint], timestamp: datetime) -> SeriesPoint | None:
        best: SeriesPoint | None = None
        best_distance: float | None = None
        for point in points:
            distance = abs((instant(point.timestamp) - instant(timestamp)).total_seconds())
            if distance <= self.merge_seconds and (best_distance is None or distance < best_distance):
                best, best_distance = point, distance
        return best

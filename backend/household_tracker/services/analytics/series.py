# backend/household_tracker/services/analytics/series.py
"""
Value series assembly and live-anchor injection.

assemble_series() turns deduplicated buckets into ascending SeriesPoints,
summing only selected users and included asset classes.
LiveAnchorInjector then makes the live total the final point.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from household_tracker.services.analytics.bucketing import Bucket
from household_tracker.services.analytics.types import (
    AssetType,
    AssetValues,
    DisplayWindow,
    Granularity,
    GroupBy,
    SeriesPoint,
    TotalValueEvent,
)
from household_tracker.services.constants import WINDOW_LABEL_FORMATS
from household_tracker.utils.date_utils import instant, start_of_hour

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def format_label(timestamp: datetime, window: DisplayWindow) -> str:
    return timestamp.strftime(WINDOW_LABEL_FORMATS[window.value])


def make_point(
        timestamp: datetime,
        value: Decimal,
        window: DisplayWindow,
        granularity: Granularity,
        breakdown: dict[str, Decimal] | None = None,
) -> SeriesPoint:
    """Build a SeriesPoint with its ISO key and window label."""
    return SeriesPoint(
        timestamp=timestamp,
        value=value,
        key=timestamp.isoformat(),
        granularity=granularity,
        label=format_label(timestamp, window),
        breakdown=breakdown or {},
        is_live=granularity == Granularity.LIVE,
        is_marker_only=granularity == Granularity.MARKER,
    )


def breakdown_of(
        values_by_user: dict[str, AssetValues],
        asset_types: frozenset[AssetType],
        group_by: GroupBy,
) -> dict[str, Decimal]:
    """
    Per-entity values for one point.

    USER: username -> filtered total. ASSET_TYPE: asset type -> sum across
    users, included asset types only.
    """
    if group_by == GroupBy.USER:
        return {
            username: values.value_for(asset_types)
            for username, values in sorted(values_by_user.items())
        }
    return {
        asset_type.value: sum((v.of(asset_type) for v in values_by_user.values()), ZERO)
        for asset_type in AssetType
        if asset_type in asset_types
    }


def assemble_series(
        buckets: Iterable[Bucket[TotalValueEvent]],
        window: DisplayWindow,
        selected_users: frozenset[str],
        asset_types: frozenset[AssetType],
        group_by: GroupBy = GroupBy.USER,
) -> list[SeriesPoint]:
    """
    Sum each bucket over selected users and included asset types.

    Buckets with no selected user are skipped. An empty asset filter
    yields zero-valued points.

    Returns:
        Points in ascending timestamp order
    """
    points: list[SeriesPoint] = []
    for bucket in buckets:
        values_by_user = {
            username: event.values
            for username, event in bucket.entries.items()
            if username in selected_users
        }
        if not values_by_user:
            continue

        value = sum((v.value_for(asset_types) for v in values_by_user.values()), ZERO)
        points.append(make_point(
            bucket.start,
            value,
            window,
            bucket.granularity,
            breakdown_of(values_by_user, asset_types, group_by),
        ))

    points.sort(key=lambda p: instant(p.timestamp))
    return points


class LiveAnchorInjector:
    """
    Makes the live total the final point of a series.

    Args:
        keep_hour_point: On 1D, keep the on-the-hour point when the live
            anchor falls in the same hour and append the live point after
            it. When False the live point replaces it.
    """

    def __init__(self, keep_hour_point: bool = True) -> None:
        self.keep_hour_point = keep_hour_point

    def inject(
            self,
            points: list[SeriesPoint],
            window: DisplayWindow,
            live_value: Decimal,
            now: datetime,
            live_breakdown: dict[str, Decimal] | None = None,
    ) -> list[SeriesPoint]:
        """
        Return a new point list ending with the live anchor at now.

        Historical points later than now are removed. On windows other
        than 1D, today's midnight-aligned point is replaced by the live
        point.
        """
        live = make_point(now, live_value, window, Granularity.LIVE, live_breakdown)

        result = [p for p in points if instant(p.timestamp) <= instant(now)]
        if len(result) < len(points):
            logger.debug(f"Dropped {len(points) - len(result)} points later than the live anchor")

        if window != DisplayWindow.ONE_DAY:
            result = [p for p in result if p.timestamp.date() != now.date()]
            result.append(live)
        elif result and instant(start_of_hour(result[-1].timestamp)) == instant(start_of_hour(now)):
            if instant(result[-1].timestamp) == instant(now) or not self.keep_hour_point:
                result[-1] = live
            else:
                result.append(live)
        else:
            result.append(live)

        # Live sorts after any point sharing its timestamp
        result.sort(key=lambda p: (instant(p.timestamp), p.is_live))
        return result

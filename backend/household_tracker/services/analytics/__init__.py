# backend/household_tracker/services/analytics/__init__.py
"""
Portfolio timeline engine.

- types: Events, enums and result dataclasses
- parsers: Spreadsheet rows -> events
- bucketing: Capture-type windows and last-value deduplication
- series: Value series assembly and live-anchor injection
- markers: Position-change correlation
- distribution: Historical distribution resolver
- live: Current holdings at live prices
- service: AnalyticsService orchestrator
"""

from household_tracker.services.analytics.service import (
    AnalyticsConfig,
    AnalyticsService,
    DatastoreUsage,
    RangeIds,
)
from household_tracker.services.analytics.types import (
    AssetType,
    CaptureType,
    DisplayWindow,
    GroupBy,
    HistoricalDistribution,
    LiveSummary,
    StockDistribution,
    UserTotal,
    ValueSeries,
)

__all__ = [
    "AnalyticsConfig",
    "AnalyticsService",
    "DatastoreUsage",
    "RangeIds",
    "AssetType",
    "CaptureType",
    "DisplayWindow",
    "GroupBy",
    "HistoricalDistribution",
    "LiveSummary",
    "StockDistribution",
    "UserTotal",
    "ValueSeries",
]

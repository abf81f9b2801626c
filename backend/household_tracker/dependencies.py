# backend/household_tracker/dependencies.py
"""
Dependency injection module for FastAPI services.

Provides singleton service instances shared across all requests. The
range cache and the datastore rate gate MUST be process-wide: a per-request
gate would never throttle anything.

Services are lazily initialized on first use to avoid import-time side effects.

Order matters: define dependencies before dependents
1. get_rate_gate, get_range_cache (no deps)
2. get_datastore (settings only)
3. get_range_reader (datastore, gate, cache)
4. get_sheet_quote_provider, get_fallback_quote_provider
5. get_price_resolver
6. get_analytics_service

Usage in routers:
    from household_tracker.dependencies import get_analytics_service

    @router.get("/series")
    async def get_series(service: AnalyticsService = Depends(get_analytics_service)):
        ...
"""

import logging
from functools import lru_cache

from household_tracker.config import settings
from household_tracker.services.analytics.service import AnalyticsConfig, AnalyticsService
from household_tracker.services.datastore.gated import GatedRangeReader
from household_tracker.services.datastore.sheets import GoogleSheetsDatastore
from household_tracker.services.market_data.pricing import PriceResolver
from household_tracker.services.market_data.sheet_quotes import SheetQuoteProvider
from household_tracker.services.market_data.yahoo import YahooFinanceQuoteProvider
from household_tracker.services.rate_gate import RangeCache, SlidingWindowRateGate

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================

@lru_cache(maxsize=1)
def get_rate_gate() -> SlidingWindowRateGate:
    """Process-wide sliding-window gate in front of the datastore."""
    logger.debug("Initializing singleton SlidingWindowRateGate")
    return SlidingWindowRateGate(
        max_calls=settings.datastore_max_calls,
        window_seconds=settings.datastore_window_seconds,
        name="datastore",
    )


@lru_cache(maxsize=1)
def get_range_cache() -> RangeCache:
    """Process-wide cache of raw ranges."""
    logger.debug("Initializing singleton RangeCache")
    return RangeCache(ttl_seconds=settings.range_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_datastore() -> GoogleSheetsDatastore:
    logger.debug("Initializing singleton GoogleSheetsDatastore")
    return GoogleSheetsDatastore(
        sheet_id=settings.sheet_id or "",
        api_key=settings.sheets_api_key or "",
        api_url=settings.sheets_api_url,
        timeout=settings.sheets_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_range_reader() -> GatedRangeReader:
    """
    Cache-first reader shared by the engine and the quote provider, so
    every datastore call counts against the same gate.
    """
    logger.debug("Initializing singleton GatedRangeReader")
    return GatedRangeReader(
        datastore=get_datastore(),
        gate=get_rate_gate(),
        cache=get_range_cache(),
    )


@lru_cache(maxsize=1)
def get_sheet_quote_provider() -> SheetQuoteProvider:
    logger.debug("Initializing singleton SheetQuoteProvider")
    return SheetQuoteProvider(
        reader=get_range_reader(),
        quotes_range=settings.range_quotes,
        crypto_range=settings.range_crypto,
    )


@lru_cache(maxsize=1)
def get_fallback_quote_provider() -> YahooFinanceQuoteProvider | None:
    """Yahoo Finance fallback, or None when disabled."""
    if not settings.yahoo_fallback_enabled:
        return None
    logger.debug("Initializing singleton YahooFinanceQuoteProvider")
    return YahooFinanceQuoteProvider()


@lru_cache(maxsize=1)
def get_price_resolver() -> PriceResolver:
    logger.debug("Initializing singleton PriceResolver")
    return PriceResolver(
        sheet=get_sheet_quote_provider(),
        fallback=get_fallback_quote_provider(),
    )


@lru_cache(maxsize=1)
def get_analytics_service() -> AnalyticsService:
    """
    Get the singleton AnalyticsService instance.

    Shares the range cache and rate gate across all requests.
    """
    logger.debug("Initializing singleton AnalyticsService")
    return AnalyticsService(
        reader=get_range_reader(),
        price_resolver=get_price_resolver(),
        config=AnalyticsConfig.from_settings(settings),
    )

# backend/household_tracker/services/__init__.py
"""
Service layer for business logic.

Services have NO knowledge of HTTP (no HTTPException, no status codes)
and raise the domain exceptions in exceptions.py.

Architecture:
    services/
    ├── __init__.py         # This file
    ├── exceptions.py       # Domain exceptions
    ├── constants.py        # Business constants and limits
    ├── protocols.py        # Clock, TabularDatastore, QuoteSource
    ├── rate_gate.py        # Sliding-window rate gate and range cache
    ├── datastore/          # Spreadsheet reads (httpx + tenacity)
    ├── market_data/        # Quote sheets, Yahoo fallback, price resolution
    └── analytics/          # Portfolio timeline engine

Usage:
    from household_tracker.services.analytics import AnalyticsService
    from household_tracker.services.exceptions import RateLimitError
"""

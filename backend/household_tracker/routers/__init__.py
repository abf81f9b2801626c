# backend/household_tracker/routers/__init__.py
"""
API routers for the Household Portfolio Tracker.

- analytics: Value series, distributions, live summary, rollup totals
"""

from household_tracker.routers.analytics import router as analytics_router

__all__ = ["analytics_router"]

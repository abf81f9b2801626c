# backend/household_tracker/middleware/__init__.py
"""
ASGI middleware: correlation ids and per-client API throttling.

Usage:
    from household_tracker.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from household_tracker.middleware.correlation import CorrelationIdMiddleware
from household_tracker.middleware.rate_limit import (
    RATE_LIMIT_ANALYTICS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_ANALYTICS",
    "RATE_LIMIT_HEALTH",
]

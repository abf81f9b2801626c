# backend/household_tracker/middleware/rate_limit.py
"""
Per-client API throttling with slowapi.

This is the inbound limit on our own endpoints. It is separate from the
datastore rate gate (services/rate_gate.py), which protects the
spreadsheet quota shared by every client.

Key by: Client IP (forwarded headers only from trusted proxies)
Storage: In-memory

Usage:
    from household_tracker.middleware.rate_limit import limiter, RATE_LIMIT_ANALYTICS

    @router.get("/series")
    @limiter.limit(RATE_LIMIT_ANALYTICS)
    async def get_series(request: Request):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from household_tracker.config import settings
from household_tracker.services.constants import (
    RATE_LIMIT_ANALYTICS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
)

logger = logging.getLogger(__name__)

# Seconds suggested to a throttled client
DEFAULT_RETRY_AFTER = 60


def _is_trusted_proxy(request: Request) -> bool:
    """Whether forwarded headers on this request may be believed."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Client address used as the throttling key.

    X-Forwarded-For (first hop) and X-Real-IP are honored only when the
    immediate peer is a trusted proxy.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
    enabled=not settings.is_test,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the same ErrorDetail shape as every other API error."""
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"
    logger.warning(f"API rate limit exceeded for {_get_client_ip(request)}: {limit_info}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitError",
            "message": f"Too many requests. {limit_info}",
            "details": {"source": "api", "retry_after": DEFAULT_RETRY_AFTER},
        },
        headers={"Retry-After": str(DEFAULT_RETRY_AFTER)},
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_ANALYTICS",
    "RATE_LIMIT_HEALTH",
]

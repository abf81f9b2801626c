# backend/household_tracker/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

For each request the middleware takes the caller's X-Correlation-ID
(or X-Request-ID), or generates a UUID, stores it in the request context
so log records carry it, and echoes it back in the response headers.

Incoming ids longer than MAX_CORRELATION_ID_LENGTH or containing
characters outside [A-Za-z0-9._:-] are replaced by a generated UUID, so
caller-supplied text never reaches log lines unchecked.

Usage:
    app.add_middleware(CorrelationIdMiddleware)

    curl -H "X-Correlation-ID: my-trace-123" http://localhost:8000/health
    # X-Correlation-ID: my-trace-123
"""

import logging
import re
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from household_tracker.utils.context import clear_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

MAX_CORRELATION_ID_LENGTH = 128
_VALID_ID = re.compile(r"^[A-Za-z0-9._:\-]+$")


def _is_valid(candidate: str) -> bool:
    return len(candidate) <= MAX_CORRELATION_ID_LENGTH and bool(_VALID_ID.match(candidate))


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Attaches a correlation ID to every request and response.

    Header precedence: X-Correlation-ID, then X-Request-ID, then a new UUID4.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = self._resolve(request)
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()

    @staticmethod
    def _resolve(request: Request) -> str:
        for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            candidate = request.headers.get(header)
            if not candidate:
                continue
            if _is_valid(candidate):
                return candidate
            logger.debug(f"Ignoring malformed {header} header")
        return str(uuid.uuid4())

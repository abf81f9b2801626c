# backend/household_tracker/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)

Run:
    uvicorn household_tracker.main:app --reload --app-dir backend
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from household_tracker import __version__
from household_tracker.config import settings
from household_tracker.middleware import (
    RATE_LIMIT_HEALTH,
    CorrelationIdMiddleware,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from household_tracker.routers import analytics_router
from household_tracker.schemas.errors import ErrorDetail, ValidationErrorDetail
from household_tracker.services.exceptions import (
    DatastoreError,
    DatastoreUnavailableError,
    MarketDataError,
    ProviderUnavailableError,
    QuoteLookupError,
    RangeNotFoundError,
    RateLimitError,
    ServiceError,
    ValidationError,
)
from household_tracker.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Household portfolio timeline and distribution API",
    version=__version__,
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================
# Must be added before other middleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "Retry-After"],
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions -> consistent ErrorDetail responses. Starlette
# picks the most specific handler along the exception's MRO.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Bad window, asset type or grouping (400)."""
    logger.warning(f"Validation error: {exc}")
    details: dict = {}
    if exc.field:
        details["field"] = exc.field
    valid_options = getattr(exc, "valid_options", None)
    if valid_options:
        details["valid_options"] = valid_options
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details or None,
        ).model_dump(),
    )


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Datastore rate gate or datastore quota exhausted (429 with Retry-After)."""
    logger.warning(f"Rate limit exceeded: {exc}")
    retry_after = exc.retry_after if exc.retry_after is not None else 60
    return JSONResponse(
        status_code=429,
        content=ErrorDetail(
            error="RateLimitError",
            message=str(exc),
            details={"source": exc.source, "retry_after": retry_after},
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RangeNotFoundError)
async def range_not_found_handler(request: Request, exc: RangeNotFoundError) -> JSONResponse:
    """Configured range does not exist in the spreadsheet (404)."""
    logger.error(f"Range not found: {exc.range_id}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error="RangeNotFoundError",
            message=str(exc),
            details={"range_id": exc.range_id},
        ).model_dump(),
    )


@app.exception_handler(DatastoreUnavailableError)
async def datastore_unavailable_handler(
    request: Request, exc: DatastoreUnavailableError
) -> JSONResponse:
    """Datastore unreachable and nothing cached (503)."""
    logger.error(f"Datastore unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="DatastoreUnavailableError",
            message=str(exc),
            details={"range_id": exc.range_id} if exc.range_id else None,
        ).model_dump(),
    )


@app.exception_handler(DatastoreError)
async def datastore_error_handler(request: Request, exc: DatastoreError) -> JSONResponse:
    """Other datastore failures, e.g. rejected credentials (502)."""
    logger.error(f"Datastore error: {exc}")
    return JSONResponse(
        status_code=502,
        content=ErrorDetail(
            error="DatastoreError",
            message=str(exc),
            details={"range_id": exc.range_id} if exc.range_id else None,
        ).model_dump(),
    )


@app.exception_handler(QuoteLookupError)
async def quote_lookup_handler(request: Request, exc: QuoteLookupError) -> JSONResponse:
    """Unknown ticker (404)."""
    logger.warning(f"Quote lookup failed: {exc}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error="QuoteLookupError",
            message=str(exc),
            details={"ticker": exc.ticker},
        ).model_dump(),
    )


@app.exception_handler(ProviderUnavailableError)
async def provider_unavailable_handler(
    request: Request, exc: ProviderUnavailableError
) -> JSONResponse:
    """Quote provider unreachable (503)."""
    logger.error(f"Provider unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="ProviderUnavailableError",
            message=str(exc),
            details={"provider": exc.provider} if exc.provider else None,
        ).model_dump(),
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Generic quote source errors (500)."""
    logger.error(f"Market data error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="MarketDataError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="ServiceError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """FastAPI's {"detail": ...} reshaped into ErrorDetail."""
    error_types = {
        400: "BadRequestError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_types.get(exc.status_code, "HTTPError"),
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Query parameter validation failures (422)."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(analytics_router)  # /analytics/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """API root - basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request):
    """
    Health check.

    Never reads the spreadsheet. Reports "degraded" when the datastore is
    not configured or the datastore rate gate is saturated; the process
    itself is still able to serve cached data.
    """
    from household_tracker.dependencies import get_rate_gate

    gate = get_rate_gate().status()
    checks = {
        "datastore": {
            "status": "healthy" if settings.is_datastore_configured else "unconfigured",
            "critical": False,
        },
        "rate_gate": {
            "status": "limited" if gate.is_limited else "healthy",
            "critical": False,
            "calls_in_window": gate.calls_in_window,
            "limit": gate.limit,
        },
    }
    degraded = not settings.is_datastore_configured or gate.is_limited
    return {
        "status": "degraded" if degraded else "healthy",
        "environment": settings.environment,
        "checks": checks,
    }


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Liveness check: succeeds whenever the process is up."""
    return {"status": "alive"}

# backend/household_tracker/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
The application layer (main.py) maps them to HTTP responses.

Malformed spreadsheet rows never raise: parsers drop them and move on.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidWindowError
    │   ├── InvalidAssetTypeError
    │   └── InvalidGroupingError
    ├── DatastoreError
    │   ├── DatastoreUnavailableError
    │   └── RangeNotFoundError
    ├── RateLimitError
    └── MarketDataError
        ├── ProviderUnavailableError
        └── QuoteLookupError
"""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a programmatic argument is invalid.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidWindowError(ValidationError):
    """Raised when a display window code is not one of 1D, 1W, 1M, 3M, YTD, 1Y, ALL."""

    def __init__(self, window: str, valid_options: list[str]) -> None:
        self.window = window
        self.valid_options = valid_options
        super().__init__(
            f"Invalid window: '{window}'. Valid options: {', '.join(valid_options)}",
            field="window",
        )


class InvalidAssetTypeError(ValidationError):
    """Raised when an asset-type filter names an unknown asset type."""

    def __init__(self, asset_type: str, valid_options: list[str]) -> None:
        self.asset_type = asset_type
        self.valid_options = valid_options
        super().__init__(
            f"Invalid asset type: '{asset_type}'. Valid options: {', '.join(valid_options)}",
            field="asset_types",
        )


class InvalidGroupingError(ValidationError):
    """Raised when a series breakdown grouping is unknown."""

    def __init__(self, group_by: str, valid_options: list[str]) -> None:
        self.group_by = group_by
        self.valid_options = valid_options
        super().__init__(
            f"Invalid grouping: '{group_by}'. Valid options: {', '.join(valid_options)}",
            field="group_by",
        )


# =============================================================================
# DATASTORE ERRORS
# =============================================================================


class DatastoreError(ServiceError):
    """
    Base exception for spreadsheet datastore failures.

    Attributes:
        range_id: The A1 range being read (optional)
    """

    def __init__(self, message: str, range_id: str | None = None) -> None:
        self.range_id = range_id
        super().__init__(message)


class DatastoreUnavailableError(DatastoreError):
    """
    Raised when the datastore cannot be reached (network, timeout, 5xx).

    Retryable. Surfaced as a hard failure only when no cached copy exists.
    """

    def __init__(self, range_id: str | None = None, reason: str | None = None) -> None:
        self.reason = reason
        message = "Datastore unavailable"
        if range_id:
            message += f" while reading '{range_id}'"
        if reason:
            message += f": {reason}"
        super().__init__(message, range_id=range_id)


class RangeNotFoundError(DatastoreError):
    """Raised when the datastore rejects a range (unknown sheet or bad A1 notation)."""

    def __init__(self, range_id: str) -> None:
        super().__init__(f"Range '{range_id}' not found in spreadsheet", range_id=range_id)


# =============================================================================
# RATE LIMIT
# =============================================================================


class RateLimitError(ServiceError):
    """
    Raised when the datastore rate gate (or the datastore itself) rejects a call.

    Recoverable: callers show a cooldown and retry after `retry_after` seconds.

    Attributes:
        source: What rejected the call ("rate-gate" or "datastore")
        retry_after: Seconds until a call would be accepted (optional)
    """

    def __init__(self, source: str, retry_after: int | None = None) -> None:
        self.source = source
        self.retry_after = retry_after
        message = f"API rate limit exceeded ({source})"
        if retry_after is not None:
            message += f". Please wait {retry_after} seconds before trying again."
        super().__init__(message)


# =============================================================================
# MARKET DATA ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for quote source errors.

    Attributes:
        provider: Name of the quote source (e.g., "sheet", "yahoo")
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class QuoteLookupError(MarketDataError):
    """
    Raised when a live quote cannot be resolved for a ticker.

    Valuation code catches this per ticker and prices the ticker at 0.
    """

    def __init__(self, ticker: str, provider: str, reason: str | None = None) -> None:
        self.ticker = ticker
        self.reason = reason
        message = f"No quote for '{ticker}' from {provider}"
        if reason:
            message += f": {reason}"
        super().__init__(message, provider=provider)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a quote provider cannot be reached or throttles us.

    Retryable.
    """

    def __init__(self, provider: str, reason: str | None = None) -> None:
        self.reason = reason
        message = f"Quote provider '{provider}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message, provider=provider)

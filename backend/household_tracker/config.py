# backend/household_tracker/config.py
"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- SHEET_ID / SHEETS_API_KEY: Spreadsheet datastore credentials
- RANGE_*: A1 ranges for each record stream
- DATASTORE_*: Sliding-window rate gate and range cache tuning

Environment-specific behavior:
- test: Fills dummy spreadsheet credentials so nothing hits the network
- development: Warns when spreadsheet credentials are missing
- production: Requires spreadsheet credentials, enforces strict validation

Configuration is validated on application startup. Invalid configuration
will raise a ValueError with a descriptive message.

Usage:
    from household_tracker.config import settings

    if settings.is_production:
        # Production-specific logic
        ...
"""
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Find the .env file in project root (parent of backend/)
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        - ENVIRONMENT: Runtime environment (development, test, production)
        - APP_NAME: Application name (default: "Household Portfolio Tracker")
        - DEBUG: Enable debug mode (default: False)
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: "text" or "json" (default: "text")

    Datastore Settings:
        - SHEET_ID: Spreadsheet identifier (required in production)
        - SHEETS_API_KEY: API key for read access (required in production)
        - DATASTORE_MAX_CALLS: Calls allowed per sliding window (default: 50)
        - DATASTORE_WINDOW_SECONDS: Sliding window length (default: 60)
        - RANGE_CACHE_TTL_SECONDS: Freshness of cached ranges (default: 300)
    """

    # Environment mode - determines validation strictness
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format (text for humans, json for aggregators)"
    )

    # Optional - safe defaults
    app_name: str = "Household Portfolio Tracker"
    debug: bool = False

    # =========================================================================
    # SPREADSHEET DATASTORE
    # =========================================================================
    sheets_api_url: str = Field(
        default="https://sheets.googleapis.com/v4/spreadsheets",
        description="Base URL of the spreadsheet values API"
    )
    sheet_id: str | None = Field(
        default=None,
        description="Spreadsheet identifier (required in production)"
    )
    sheets_api_key: str | None = Field(
        default=None,
        description="API key used for read-only range access"
    )
    sheets_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="HTTP timeout for a single range read"
    )

    # =========================================================================
    # RANGE IDENTIFIERS
    # =========================================================================
    range_holdings: str = Field(
        default="Sheet1!A1:D1000",
        description="Current holdings: Username, Ticker, Shares, Last Updated"
    )
    range_holdings_history: str = Field(
        default="HoldingsHistory!A1:E10000",
        description="Holdings log: Timestamp, Username, Ticker, Shares, Chat Notes"
    )
    range_total_values: str = Field(
        default="TotalValueHistory!A1:G10000",
        description="Total-value snapshots: Timestamp, Username, Stock, Cash, Real Estate, Crypto, Capture Type"
    )
    range_daily_rollups: str = Field(
        default="DailyTotals!A1:F1000",
        description="Daily rollups: Username, Stock, Cash, Real Estate, Crypto, Snapshot Date"
    )
    range_position_changes: str = Field(
        default="PositionChanges!A1:E10000",
        description="Position changes: Timestamp, Username, Ticker, Shares, Change Amount"
    )
    range_quotes: str = Field(
        default="Sheet2!A1:P1000",
        description="Equity quote sheet populated by spreadsheet formulas"
    )
    range_crypto: str = Field(
        default="Crypto!A1:E1000",
        description="Crypto quote sheet: Symbol, Name, Price USD"
    )

    # =========================================================================
    # RATE GATE / CACHE
    # =========================================================================
    datastore_max_calls: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum datastore calls inside the sliding window"
    )
    datastore_window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Sliding window length for the datastore rate gate"
    )
    range_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Seconds a cached range is considered fresh"
    )

    # =========================================================================
    # ENGINE
    # =========================================================================
    local_timezone: str = Field(
        default="America/New_York",
        description="Timezone used for naive timestamps and calendar days"
    )
    known_users: list[str] = Field(
        default_factory=list,
        description="Users accepted in addition to those on the holdings sheet"
    )
    change_merge_seconds: int = Field(
        default=60,
        ge=0,
        description="Position changes this close to a series point merge into it"
    )
    weekly_match_days: int = Field(
        default=3,
        ge=0,
        description="Half-width (days) of the window around a snapped week start"
    )
    snap_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="Maximum distance (days) from a requested date to a week start"
    )
    live_anchor_keep_hour_point: bool = Field(
        default=True,
        description="1D view keeps the on-the-hour point next to the live point"
    )
    yahoo_fallback_enabled: bool = Field(
        default=False,
        description="Query Yahoo Finance when a ticker is missing from the quote sheet"
    )

    # =========================================================================
    # CORS / PROXY
    # =========================================================================
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        description="Allowed CORS origins"
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests"
    )
    trust_proxy_headers: bool = Field(
        default=False,
        description="Trust X-Forwarded-For from any client (only behind a load balancer)"
    )
    trusted_proxy_ips: list[str] = Field(
        default_factory=lambda: ["127.0.0.1"],
        description="Proxy addresses whose forwarded headers are trusted"
    )

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("local_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject timezone names the tz database does not know."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown LOCAL_TIMEZONE: '{value}'") from e
        return value

    @model_validator(mode="after")
    def validate_datastore_config(self) -> "Settings":
        """
        Validate datastore configuration based on environment.

        Rules:
        - test: dummy credentials are provided when absent
        - development: missing credentials only warn (reads will fail)
        - production: SHEET_ID and SHEETS_API_KEY are required
        """
        if self.environment == "test":
            if self.sheet_id is None:
                object.__setattr__(self, "sheet_id", "test-sheet-id")
            if self.sheets_api_key is None:
                object.__setattr__(self, "sheets_api_key", "test-api-key")
            return self

        missing = [
            name for name, value in (
                ("SHEET_ID", self.sheet_id),
                ("SHEETS_API_KEY", self.sheets_api_key),
            )
            if not value
        ]

        if self.environment == "production" and missing:
            raise ValueError(
                f"{', '.join(missing)} required in production environment. "
                "Set them to the spreadsheet id and a read-only API key."
            )
        if self.environment == "development" and missing:
            import warnings
            warnings.warn(
                f"{', '.join(missing)} not set. Datastore reads will fail until "
                "the spreadsheet credentials are configured.",
                UserWarning,
                stacklevel=2,
            )

        return self

    @property
    def tz(self) -> ZoneInfo:
        """Configured local timezone."""
        return ZoneInfo(self.local_timezone)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"

    @property
    def is_datastore_configured(self) -> bool:
        """Check if the spreadsheet datastore can be reached."""
        return all([self.sheet_id, self.sheets_api_key])


# Create single instance
settings = Settings()

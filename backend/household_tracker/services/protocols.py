# backend/household_tracker/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test fakes work without explicit inheritance
- Clear documentation of required interfaces
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from household_tracker.services.market_data.base import Quote


class Clock(Protocol):
    """Source of "now". Production uses the system clock; tests freeze it."""

    def now(self) -> datetime:
        ...

    def monotonic(self) -> float:
        ...


class TabularDatastore(Protocol):
    """Read-only access to a spreadsheet range."""

    async def read_range(self, range_id: str) -> list[list[str]]:
        """
        Return the rows of range_id; row 0 is the header.

        An empty range yields an empty list.
        """
        ...


class QuoteSource(Protocol):
    """Live quote lookup for a single ticker."""

    @property
    def name(self) -> str:
        ...

    async def get_quote(self, ticker: str) -> Quote:
        """
        Raises:
            QuoteLookupError: The ticker has no usable quote
        """
        ...

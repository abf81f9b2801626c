# backend/household_tracker/services/datastore/base.py
"""
Abstract interface for tabular datastores.

A datastore returns the raw rows of a named range. Row 0 is always the
header; every cell is text. Parsing and validation happen downstream in
the record parsers, so a datastore never interprets cell contents.

Retry Behavior:
    The base class provides `_execute_with_retry`, which retries
    DatastoreUnavailableError with exponential backoff. Rate-limit
    rejections are NOT retried here: every retry would spend another
    call from the per-minute quota, so they propagate to the caller.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_tracker.services.exceptions import DatastoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TabularDatastoreBase(ABC):
    """
    Base class for read-only spreadsheet-like datastores.

    Subclasses implement `_fetch_range`; callers use `read_range`, which
    wraps the fetch in the retry policy below.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs (e.g., "google-sheets")."""

    @abstractmethod
    async def _fetch_range(self, range_id: str) -> list[list[str]]:
        """
        Fetch the rows of a single range once.

        Raises:
            DatastoreUnavailableError: Network error, timeout or 5xx (retryable)
            RateLimitError: Datastore quota exhausted
            RangeNotFoundError: Unknown sheet or malformed range
        """

    async def read_range(self, range_id: str) -> list[list[str]]:
        """
        Read a range, retrying transient failures.

        Returns:
            Rows of the range (header first); [] when the range is empty
        """
        rows = await self._execute_with_retry(self._fetch_range, range_id)
        logger.debug(f"{self.name}: read {len(rows)} rows from {range_id}")
        return rows

    async def _execute_with_retry(
            self,
            func: Callable[..., Awaitable[T]],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Await func with exponential backoff on DatastoreUnavailableError.

        Raises:
            The last exception if all retries fail
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type(DatastoreUnavailableError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await func(*args, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

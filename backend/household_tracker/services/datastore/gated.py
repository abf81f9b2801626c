# backend/household_tracker/services/datastore/gated.py
"""
Cache-first, rate-gated range reader.

All engine reads go through GatedRangeReader rather than the datastore:

    1. Fresh cache entry?           -> serve it (no quota spent)
    2. Rate gate accepts the call?  -> read the datastore, cache, serve
    3. Gate rejects / store down?   -> serve the last cached rows flagged
                                       stale, or propagate when none exist

A stale snapshot is never served silently: RangeSnapshot.stale is set
and RangeSnapshot.warning carries the original error message so the
caller can surface it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from household_tracker.services.exceptions import (
    DatastoreUnavailableError,
    RateLimitError,
)
from household_tracker.services.protocols import TabularDatastore
from household_tracker.services.rate_gate import CacheEntry, RangeCache, SlidingWindowRateGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeSnapshot:
    """
    Rows of one range as seen by a single request.

    Attributes:
        range_id: A1 range that was read
        rows: Immutable rows, header first
        fetched_at: When the rows left the datastore
        from_cache: Served from the range cache
        stale: Served from an expired cache entry after a failed read
        warning: Why stale rows were served (None otherwise)
    """
    range_id: str
    rows: tuple[tuple[str, ...], ...]
    fetched_at: datetime
    from_cache: bool = False
    stale: bool = False
    warning: str | None = None


class GatedRangeReader:
    """
    Reads ranges through a RangeCache and a SlidingWindowRateGate.

    Args:
        datastore: Underlying datastore
        gate: Process-wide rate gate
        cache: Process-wide range cache
        allow_stale: Serve expired cache entries when a read fails
    """

    def __init__(
            self,
            datastore: TabularDatastore,
            gate: SlidingWindowRateGate,
            cache: RangeCache,
            allow_stale: bool = True,
    ) -> None:
        self._datastore = datastore
        self._gate = gate
        self._cache = cache
        self._allow_stale = allow_stale
        self._datastore_reads = 0

    @property
    def gate(self) -> SlidingWindowRateGate:
        return self._gate

    @property
    def cache(self) -> RangeCache:
        return self._cache

    @property
    def datastore_reads(self) -> int:
        """Reads that reached the datastore since startup."""
        return self._datastore_reads

    async def read(self, range_id: str, force_refresh: bool = False) -> RangeSnapshot:
        """
        Read a range, preferring the cache.

        Args:
            range_id: A1 range to read
            force_refresh: Skip the fresh-cache check (the gate still applies)

        Raises:
            RateLimitError: Gate or datastore rejected the call and nothing is cached
            DatastoreUnavailableError: Datastore unreachable and nothing is cached
        """
        if not force_refresh:
            entry = self._cache.get_fresh(range_id)
            if entry is not None:
                return _snapshot(range_id, entry, from_cache=True)

        try:
            self._gate.record_call()
            rows = await self._datastore.read_range(range_id)
        except (RateLimitError, DatastoreUnavailableError) as e:
            stale = self._cache.get_any(range_id) if self._allow_stale else None
            if stale is None:
                raise
            logger.warning(
                f"Serving stale rows for {range_id} "
                f"(fetched {stale.fetched_at.isoformat()}): {e}"
            )
            return _snapshot(range_id, stale, from_cache=True, stale=True, warning=str(e))

        self._datastore_reads += 1
        entry = self._cache.put(range_id, rows)
        logger.info(f"Read {len(rows)} rows from {range_id}")
        return _snapshot(range_id, entry)


def _snapshot(
        range_id: str,
        entry: CacheEntry,
        from_cache: bool = False,
        stale: bool = False,
        warning: str | None = None,
) -> RangeSnapshot:
    return RangeSnapshot(
        range_id=range_id,
        rows=entry.rows,
        fetched_at=entry.fetched_at,
        from_cache=from_cache,
        stale=stale,
        warning=warning,
    )

# backend/household_tracker/services/rate_gate.py
"""
Sliding-window rate gate and range cache for the spreadsheet datastore.

The spreadsheet API enforces a per-minute read quota. Every datastore read
goes through a process-wide SlidingWindowRateGate that remembers the
monotonic timestamps of recent calls and rejects a call once the window
is full. A RangeCache keeps the last rows read for each range so repeated
requests inside the freshness window never touch the quota.

Both objects hold their state explicitly and take an injectable Clock,
so tests can advance time instead of sleeping.

Usage:
    from household_tracker.services.rate_gate import (
        RangeCache,
        SlidingWindowRateGate,
        SystemClock,
    )

    gate = SlidingWindowRateGate(max_calls=50, window_seconds=60)
    gate.record_call()          # raises RateLimitError when full

    cache = RangeCache(ttl_seconds=300)
    entry = cache.get_fresh("Sheet1!A1:D1000")
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from household_tracker.services.exceptions import RateLimitError
from household_tracker.services.protocols import Clock

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall clock in UTC plus the process monotonic clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


# =============================================================================
# RATE GATE
# =============================================================================


@dataclass(frozen=True)
class RateGateStatus:
    """
    Snapshot of the rate gate for monitoring and UI cooldown messages.

    Attributes:
        calls_in_window: Calls recorded inside the current window
        limit: Maximum calls allowed per window
        percentage: calls_in_window / limit * 100, rounded to one decimal
        is_limited: True when the next call would be rejected
        retry_after_seconds: Seconds until the oldest call leaves the window (0 if none)
        total_calls: Calls accepted since startup
        rejected_calls: Calls rejected since startup
    """
    calls_in_window: int
    limit: int
    percentage: float
    is_limited: bool
    retry_after_seconds: int
    total_calls: int
    rejected_calls: int


@dataclass
class SlidingWindowRateGate:
    """
    Thread-safe sliding-window call counter.

    Attributes:
        max_calls: Calls allowed in any window_seconds interval
        window_seconds: Length of the sliding window
        clock: Time source (monotonic() is used for the window)
        name: Identifier used in logs and errors
    """

    max_calls: int = 50
    window_seconds: float = 60.0
    clock: Clock = field(default_factory=SystemClock)
    name: str = "rate-gate"

    _timestamps: list[float] = field(default_factory=list, init=False)
    _total_calls: int = field(default=0, init=False)
    _rejected_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    def __post_init__(self) -> None:
        if self.max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    def _prune(self, now: float) -> None:
        """Drop calls that have left the window. Caller holds the lock."""
        cutoff = now - self.window_seconds
        self._timestamps = [ts for ts in self._timestamps if ts > cutoff]

    def _retry_after(self, now: float) -> int:
        if not self._timestamps:
            return 0
        remaining = self._timestamps[0] + self.window_seconds - now
        return max(0, math.ceil(remaining))

    def record_call(self) -> None:
        """
        Record one outbound call, or reject it when the window is full.

        Raises:
            RateLimitError: The window already holds max_calls calls
        """
        with self._lock:
            now = self.clock.monotonic()
            self._prune(now)

            if len(self._timestamps) >= self.max_calls:
                self._rejected_calls += 1
                retry_after = self._retry_after(now)
                logger.warning(
                    f"{self.name}: {len(self._timestamps)}/{self.max_calls} calls "
                    f"in {self.window_seconds:.0f}s window, retry in {retry_after}s"
                )
                raise RateLimitError(self.name, retry_after=retry_after)

            self._timestamps.append(now)
            self._total_calls += 1

    def status(self) -> RateGateStatus:
        """Current window usage."""
        with self._lock:
            now = self.clock.monotonic()
            self._prune(now)
            count = len(self._timestamps)
            return RateGateStatus(
                calls_in_window=count,
                limit=self.max_calls,
                percentage=round(count / self.max_calls * 100, 1),
                is_limited=count >= self.max_calls,
                retry_after_seconds=self._retry_after(now),
                total_calls=self._total_calls,
                rejected_calls=self._rejected_calls,
            )


# =============================================================================
# RANGE CACHE
# =============================================================================


@dataclass(frozen=True)
class CacheEntry:
    """
    Rows cached for one range.

    Rows are stored as tuples so concurrent readers can share them safely.

    Attributes:
        rows: Immutable copy of the range rows (header included)
        stored_at: Monotonic time the entry was written
        fetched_at: Wall-clock time the rows were read from the datastore
    """
    rows: tuple[tuple[str, ...], ...]
    stored_at: float
    fetched_at: datetime


@dataclass
class RangeCache:
    """
    Thread-safe per-range cache with a fixed freshness window.

    Entries are never evicted on expiry; an expired entry is still
    available through get_any() so callers can serve stale rows when the
    datastore is unreachable or rate limited.
    """

    ttl_seconds: float = 300.0
    clock: Clock = field(default_factory=SystemClock)

    _entries: dict[str, CacheEntry] = field(default_factory=dict, init=False)
    _hits: int = field(default=0, init=False)
    _misses: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    def get_fresh(self, range_id: str) -> CacheEntry | None:
        """Entry for range_id if it is younger than ttl_seconds."""
        with self._lock:
            entry = self._entries.get(range_id)
            if entry is not None and self.clock.monotonic() - entry.stored_at < self.ttl_seconds:
                self._hits += 1
                logger.debug(f"Cache hit for {range_id}")
                return entry
            self._misses += 1
            return None

    def get_any(self, range_id: str) -> CacheEntry | None:
        """Entry for range_id regardless of age."""
        with self._lock:
            return self._entries.get(range_id)

    def put(self, range_id: str, rows: list[list[str]]) -> CacheEntry:
        entry = CacheEntry(
            rows=tuple(tuple(row) for row in rows),
            stored_at=self.clock.monotonic(),
            fetched_at=self.clock.now(),
        )
        with self._lock:
            self._entries[range_id] = entry
        return entry

    def invalidate(self, range_id: str | None = None) -> None:
        """Drop one range, or every range when range_id is None."""
        with self._lock:
            if range_id is None:
                self._entries.clear()
            else:
                self._entries.pop(range_id, None)

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def misses(self) -> int:
        with self._lock:
            return self._misses

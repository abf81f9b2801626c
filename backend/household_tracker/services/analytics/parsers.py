# backend/household_tracker/services/analytics/parsers.py
"""
Record parsers: raw spreadsheet rows -> typed events.

Each stream has its own parser with a fixed positional layout:

    Stream              Columns
    ------------------  ---------------------------------------------------
    Current holdings    Username, Ticker, Shares, Last Updated
    Holdings history    Timestamp, Username, Ticker, Shares, Chat Notes
    Total values        Timestamp, Username, Stock, Cash, Real Estate,
                        Crypto, Capture Type
    Daily rollups       Username, Stock, Cash, Real Estate, Crypto,
                        Snapshot Date
    Position changes    Timestamp, Username, Ticker, Shares, Change Amount

Parsing contract:
    - Row 0 is a header and is skipped
    - Cells are trimmed; a row missing any required cell is dropped
    - Unparsable timestamps drop the row
    - Numbers are best-effort; junk reads as 0 (change amounts: None)
    - Rows for users outside `known_users` are dropped
    - Nothing raises: drops are counted in ParseStats and logged at DEBUG

Parsers are single-use and yield lazily; ParseStats is complete once
the iterator is exhausted.

Usage:
    parser = TotalValueParser(tz=ZoneInfo("America/New_York"), known_users={"Amy"})
    events = list(parser.parse(rows))
    parser.stats.dropped  # {"invalid_total": 2, ...}
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Generic, Iterable, Iterator, Sequence, TypeVar

from household_tracker.services.analytics.types import (
    AssetValues,
    CaptureType,
    CurrentHolding,
    DailyRollupEvent,
    HoldingEvent,
    PositionChangeEvent,
    TotalValueEvent,
)
from household_tracker.services.constants import HEADER_ROWS
from household_tracker.utils.parsing import (
    parse_decimal,
    parse_optional_decimal,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass
class ParseStats:
    """
    Outcome counters for one parse.

    Attributes:
        accepted: Rows turned into events
        dropped: reason -> rows dropped for that reason
    """
    accepted: int = 0
    dropped: Counter = field(default_factory=Counter)

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())


class RecordParser(ABC, Generic[E]):
    """
    Base class for positional row parsers.

    Subclasses declare REQUIRED_COLUMNS and implement `_parse_row`, which
    returns the event or a short drop reason.

    Args:
        tz: Timezone for naive timestamps
        known_users: Accepted usernames; None accepts everyone
    """

    # Column positions that must hold a non-empty value
    REQUIRED_COLUMNS: tuple[int, ...] = ()
    # Column holding the username (None: stream has no user column)
    USERNAME_COLUMN: int | None = None

    def __init__(self, tz: tzinfo, known_users: Iterable[str] | None = None) -> None:
        self.tz = tz
        self.known_users = frozenset(known_users) if known_users is not None else None
        self.stats = ParseStats()

    @property
    @abstractmethod
    def name(self) -> str:
        """Stream name used in logs."""

    @abstractmethod
    def _parse_row(self, cells: list[str]) -> tuple[E | None, str | None]:
        """Return (event, None) or (None, drop_reason)."""

    def parse(self, rows: Sequence[Sequence[str]]) -> Iterator[E]:
        """
        Lazily parse rows (header included) into events.

        Yields nothing for an empty range.
        """
        for row_number, row in enumerate(rows[HEADER_ROWS:], start=HEADER_ROWS + 1):
            cells = [(cell or "").strip() for cell in row]
            event, reason = self._accept(cells)
            if event is None:
                self.stats.dropped[reason] += 1
                logger.debug(f"{self.name}: dropped row {row_number} ({reason})")
                continue
            self.stats.accepted += 1
            yield event

        if self.stats.dropped:
            logger.debug(
                f"{self.name}: accepted {self.stats.accepted}, "
                f"dropped {dict(self.stats.dropped)}"
            )

    def _accept(self, cells: list[str]) -> tuple[E | None, str]:
        if not any(cells):
            return None, "blank_row"
        for index in self.REQUIRED_COLUMNS:
            if index >= len(cells) or not cells[index]:
                return None, "missing_value"
        if (
            self.known_users is not None
            and self.USERNAME_COLUMN is not None
            and cells[self.USERNAME_COLUMN] not in self.known_users
        ):
            return None, "unknown_user"

        event, reason = self._parse_row(cells)
        if event is None:
            return None, reason or "invalid_row"
        return event, ""

    def _timestamp(self, value: str) -> datetime | None:
        return parse_timestamp(value, self.tz)


def _cell(cells: list[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


# =============================================================================
# STREAM PARSERS
# =============================================================================

class CurrentHoldingParser(RecordParser[CurrentHolding]):
    """Username, Ticker, Shares, Last Updated."""

    REQUIRED_COLUMNS = (0, 1, 2)
    USERNAME_COLUMN = 0

    @property
    def name(self) -> str:
        return "holdings"

    def _parse_row(self, cells: list[str]) -> tuple[CurrentHolding | None, str | None]:
        shares = parse_decimal(cells[2])
        if shares < 0:
            return None, "negative_shares"
        return CurrentHolding(
            username=cells[0],
            ticker=cells[1].upper(),
            shares=shares,
            last_updated=self._timestamp(_cell(cells, 3)),
        ), None


class HoldingEventParser(RecordParser[HoldingEvent]):
    """Timestamp, Username, Ticker, Shares, Chat Notes."""

    REQUIRED_COLUMNS = (0, 1, 2, 3)
    USERNAME_COLUMN = 1

    @property
    def name(self) -> str:
        return "holdings_history"

    def _parse_row(self, cells: list[str]) -> tuple[HoldingEvent | None, str | None]:
        timestamp = self._timestamp(cells[0])
        if timestamp is None:
            return None, "invalid_timestamp"
        shares = parse_decimal(cells[3])
        if shares < 0:
            return None, "negative_shares"
        return HoldingEvent(
            timestamp=timestamp,
            username=cells[1],
            ticker=cells[2].upper(),
            shares=shares,
            chat_notes=_cell(cells, 4) or None,
        ), None


class TotalValueParser(RecordParser[TotalValueEvent]):
    """Timestamp, Username, Stock, Cash, Real Estate, Crypto, Capture Type."""

    REQUIRED_COLUMNS = (0, 1, 6)
    USERNAME_COLUMN = 1

    @property
    def name(self) -> str:
        return "total_values"

    def _parse_row(self, cells: list[str]) -> tuple[TotalValueEvent | None, str | None]:
        timestamp = self._timestamp(cells[0])
        if timestamp is None:
            return None, "invalid_timestamp"

        try:
            capture_type = CaptureType(cells[6].upper())
        except ValueError:
            return None, "invalid_capture_type"

        values = AssetValues(
            stock=parse_decimal(_cell(cells, 2)),
            cash=parse_decimal(_cell(cells, 3)),
            real_estate=parse_decimal(_cell(cells, 4)),
            crypto=parse_decimal(_cell(cells, 5)),
        )
        if values.total <= 0:
            return None, "invalid_total"

        return TotalValueEvent(
            timestamp=timestamp,
            username=cells[1],
            values=values,
            capture_type=capture_type,
        ), None


class PositionChangeParser(RecordParser[PositionChangeEvent]):
    """Timestamp, Username, Ticker, Shares, Change Amount."""

    REQUIRED_COLUMNS = (0, 1, 2)
    USERNAME_COLUMN = 1

    @property
    def name(self) -> str:
        return "position_changes"

    def _parse_row(self, cells: list[str]) -> tuple[PositionChangeEvent | None, str | None]:
        timestamp = self._timestamp(cells[0])
        if timestamp is None:
            return None, "invalid_timestamp"
        return PositionChangeEvent(
            timestamp=timestamp,
            username=cells[1],
            ticker=cells[2].upper(),
            shares=parse_decimal(_cell(cells, 3)),
            change_amount=parse_optional_decimal(_cell(cells, 4)),
        ), None


class DailyRollupParser(RecordParser[DailyRollupEvent]):
    """
    Username, Stock, Cash, Real Estate, Crypto, Snapshot Date.

    A row without a usable snapshot date takes the most recent date found
    on any other row of the same range, or today when no row has one.
    The whole range is scanned for that date before the first event is
    yielded.
    """

    REQUIRED_COLUMNS = (0,)
    USERNAME_COLUMN = 0

    def __init__(
            self,
            tz: tzinfo,
            known_users: Iterable[str] | None = None,
            today: date | None = None,
    ) -> None:
        super().__init__(tz, known_users)
        self._today = today
        self._fallback_date: date | None = None

    @property
    def name(self) -> str:
        return "daily_rollups"

    def parse(self, rows: Sequence[Sequence[str]]) -> Iterator[DailyRollupEvent]:
        dates = [
            parsed.date()
            for row in rows[HEADER_ROWS:]
            if len(row) > 5
            for parsed in [self._timestamp((row[5] or "").strip())]
            if parsed is not None
        ]
        self._fallback_date = max(dates) if dates else (self._today or datetime.now(self.tz).date())
        return super().parse(rows)

    def _parse_row(self, cells: list[str]) -> tuple[DailyRollupEvent | None, str | None]:
        parsed = self._timestamp(_cell(cells, 5))
        snapshot_date = parsed.date() if parsed is not None else self._fallback_date
        return DailyRollupEvent(
            username=cells[0],
            values=AssetValues(
                stock=parse_decimal(_cell(cells, 1)),
                cash=parse_decimal(_cell(cells, 2)),
                real_estate=parse_decimal(_cell(cells, 3)),
                crypto=parse_decimal(_cell(cells, 4)),
            ),
            snapshot_date=snapshot_date,
        ), None

# backend/household_tracker/utils/parsing.py
"""
Best-effort cell parsing for spreadsheet text.

Spreadsheet cells are free text typed by people and formulas, so these
helpers never raise on bad input: numbers fall back to zero (or None
where absence is meaningful) and timestamps fall back to None.

Timestamp formats, tried in order:
    1. ISO-8601 when the text contains a 'T' separator
       (2024-01-15T10:30:00Z, 2024-01-15T10:30:00-05:00, 2024-01-15T10:30:00)
    2. US month-first dates, optionally with a time
       (1/15/2024, 01/15/2024 10:30:00, 1/15/2024 10:30 AM)
    3. Generic parsing via python-dateutil (Jan 15 2024, 2024-01-15, ...)

Naive results are interpreted in the supplied timezone.
"""

from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation

from dateutil import parser as date_parser

from household_tracker.services.constants import EMPTY_NUMBER_MARKERS
from household_tracker.utils.date_utils import ensure_aware

ZERO = Decimal("0")

US_DATE_PATTERNS: tuple[str, ...] = (
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
)


def parse_decimal(value: str | None) -> Decimal:
    """
    Parse a numeric cell, treating anything unusable as 0.

    Thousands separators, currency symbols and percent signs are stripped.

    Example:
        >>> parse_decimal("$1,234.50")
        Decimal('1234.50')
        >>> parse_decimal("n/a")
        Decimal('0')
    """
    parsed = parse_optional_decimal(value)
    return ZERO if parsed is None else parsed


def parse_optional_decimal(value: str | None) -> Decimal | None:
    """
    Parse a numeric cell, returning None when it holds no finite number.

    Used where "missing" differs from zero (position change amounts).
    """
    if value is None:
        return None

    cleaned = value.strip().replace(",", "").replace("$", "").replace("%", "")
    if cleaned.upper() in EMPTY_NUMBER_MARKERS:
        return None

    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not number.is_finite():
        return None
    return number


def parse_timestamp(value: str | None, tz: tzinfo) -> datetime | None:
    """
    Parse a timestamp cell into an aware datetime in tz.

    Args:
        value: Raw cell text
        tz: Timezone for naive timestamps and for the result

    Returns:
        Aware datetime, or None when the text is not a timestamp
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    parsed = None
    if "T" in text:
        parsed = _parse_iso(text)
    if parsed is None and "/" in text:
        parsed = _parse_us(text)
    if parsed is None:
        parsed = _parse_generic(text)
    if parsed is None:
        return None

    return ensure_aware(parsed, tz)


def _parse_iso(text: str) -> datetime | None:
    # fromisoformat only accepts a trailing 'Z' from Python 3.11 onwards
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_us(text: str) -> datetime | None:
    for pattern in US_DATE_PATTERNS:
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    return None


def _parse_generic(text: str) -> datetime | None:
    try:
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        return None


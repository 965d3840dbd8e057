"""
Locale-invariant parsing of quantities and amounts read from fuel receipts.

Colombian receipts mix both decimal separators:
- "15,5 Gal" (comma decimal)
- "10.366" (period decimal)

Commas are turned into periods before parsing. A value using a comma as a
thousands separator ("1,234.56") becomes "1.234.56" and is rejected rather
than guessed at.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def parse_decimal(value: str) -> Optional[Decimal]:
    """
    Parse a captured numeric token, accepting comma or period as decimal separator.

    Args:
        value: Raw captured text (e.g., "15,5", "10.366")

    Returns:
        Decimal value or None if the token is not a single finite number

    Examples:
        >>> parse_decimal("15,5")
        Decimal('15.5')
        >>> parse_decimal("1,234.56") is None
        True
    """
    if not value or not isinstance(value, str):
        return None

    normalized = value.strip().replace(',', '.')
    if not normalized:
        return None

    try:
        result = Decimal(normalized)
    except InvalidOperation:
        return None

    if not result.is_finite():
        return None

    return result


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a provider numeric value (float, int, Decimal) to Decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        # str() keeps the shortest repr, avoiding binary float noise
        return Decimal(str(value))
    return None


def parse_int(value: str) -> Optional[int]:
    """Parse a captured run of digits."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


DAY_FIRST_FORMATS = ['%d/%m/%Y', '%d-%m-%Y', '%d/%m/%y', '%d-%m-%y']


def parse_iso_date(value: str) -> Optional[date]:
    """Parse YYYY-MM-DD or YYYY/MM/DD."""
    try:
        return datetime.strptime(value.replace('/', '-'), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


def parse_day_first_date(value: str) -> Optional[date]:
    """
    Parse D/M/Y or D-M-Y with a 2 or 4 digit year (Colombian receipts are day-first).

    A 3-digit year matches no format and is rejected.
    """
    for fmt in DAY_FIRST_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except (TypeError, ValueError):
            continue
    return None

"""
Amount Handling Module

Decimal helpers for the single posting currency. Amounts arrive already
converted to the posting currency; this module only parses, rounds and
compares them. NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Any, Iterable
import re

# High precision for intermediate sums
getcontext().prec = 28

ZERO = Decimal('0')
DEFAULT_TOLERANCE = Decimal('0.01')

_CURRENCY_PREFIX = re.compile(r'^(?:[A-Za-z]{3}\s*|[$€£¥₨])')
_THOUSANDS = re.compile(r'[+-]?\d{1,3}(?:,\d{3})+(?:\.\d*)?')
_DECIMAL_COMMA = re.compile(r'[+-]?\d+,\d{1,2}')


class Currency(Enum):
    """ISO 4217 posting currencies with their minor-unit precision"""
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    PKR = ("PKR", 2)
    AED = ("AED", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        try:
            return cls[code.upper()]
        except KeyError:
            raise ValueError(f"Unsupported posting currency: {code}")


def to_amount(value: Any) -> Decimal:
    """
    Convert a caller-supplied value to Decimal

    Accepts Decimal, int, str and float (floats go through str() so that
    0.1 stays 0.1). None is treated as zero, the way collaborators send
    the unused side of an entry.

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to an amount")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = decimal_from_string(value)
    else:
        raise ValueError(f"Cannot convert {value!r} to an amount")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not value.strip():
        raise ValueError("Value must be a non-empty string")

    # Only a leading currency code or symbol is dropped; anything else left
    # over must be part of the number or the parse fails
    clean_value = _CURRENCY_PREFIX.sub('', value.strip(), count=1).strip()

    if _THOUSANDS.fullmatch(clean_value):
        clean_value = clean_value.replace(',', '')
    elif _DECIMAL_COMMA.fullmatch(clean_value):
        clean_value = clean_value.replace(',', '.')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def quantize(value: Decimal, currency: Currency = Currency.USD) -> Decimal:
    """Round to the currency's minor unit"""
    return value.quantize(
        Decimal('0.1') ** currency.precision,
        rounding=ROUND_HALF_UP
    )


def total(values: Iterable[Decimal]) -> Decimal:
    """Sum amounts starting from a Decimal zero"""
    return sum(values, ZERO)


def within_tolerance(left: Decimal, right: Decimal,
                     tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """Check |left - right| <= tolerance"""
    return abs(left - right) <= tolerance

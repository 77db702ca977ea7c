"""
Numeric type utilities for Decimal precision.

Helpers for converting prices and sizes to the exchange's wire strings
without float precision loss.
"""

from typing import Any, Optional, Union
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)

Numeric = Union[Decimal, float, int, str]


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Safely convert any value to Decimal.

    Args:
        value: Value to convert (str, int, float, Decimal, None)
        default: Default value if conversion fails (default: None)

    Returns:
        Decimal or default if conversion fails

    Examples:
        >>> to_decimal("0.65")
        Decimal('0.65')
        >>> to_decimal(100.50)
        Decimal('100.5')
        >>> to_decimal(None, Decimal("0"))
        Decimal('0')
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        elif isinstance(value, bool):
            logger.warning(f"Cannot convert bool to Decimal: {value}")
            return default
        elif isinstance(value, str):
            return Decimal(value)
        elif isinstance(value, (int, float)):
            # Convert via string to avoid float precision loss
            return Decimal(str(value))
        else:
            logger.warning(f"Cannot convert {type(value)} to Decimal: {value}")
            return default
    except (ValueError, InvalidOperation) as e:
        logger.warning(f"Failed to convert {value} to Decimal: {e}")
        return default


def remove_trailing_zeros(value: str) -> str:
    """
    Strip trailing fractional zeros.

    Examples:
        >>> remove_trailing_zeros("100.500")
        '100.5'
        >>> remove_trailing_zeros("2.000")
        '2'
        >>> remove_trailing_zeros("1200")
        '1200'
    """
    if '.' not in value:
        return value
    return value.rstrip('0').rstrip('.')


def float_to_wire(value: Numeric) -> str:
    """
    Render a price or size the way the exchange hashes it.

    At most 8 decimals, no trailing zeros, no exponent, and never "-0".

    Raises:
        ValueError: If the value cannot be represented in 8 decimals

    Examples:
        >>> float_to_wire(Decimal("30000.50"))
        '30000.5'
        >>> float_to_wire(0.1)
        '0.1'
        >>> float_to_wire(-0.0)
        '0'
    """
    decimal_value = to_decimal(value)
    if decimal_value is None:
        raise ValueError(f"Cannot convert {value!r} to wire format")

    rounded = f"{decimal_value:.8f}"
    if abs(Decimal(rounded) - decimal_value) >= Decimal("1e-12"):
        raise ValueError(f"float_to_wire causes rounding: {value}")

    if rounded == "-0.00000000":
        rounded = "0.00000000"

    return remove_trailing_zeros(rounded)


def float_to_int(value: Numeric, power: int) -> int:
    """
    Scale a value by 10**power into an integer.

    Raises:
        ValueError: If scaling would drop precision

    Examples:
        >>> float_to_int(Decimal("1.5"), 6)
        1500000
    """
    decimal_value = to_decimal(value)
    if decimal_value is None:
        raise ValueError(f"Cannot convert {value!r} to int")

    scaled = decimal_value * (Decimal(10) ** power)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"float_to_int causes rounding: {value}")
    return int(scaled)

"""
Numeric guard helpers shared by the simulator, trading engine and sizing code.

Simulation math must never propagate NaN/inf into prices or equity, so hot
paths clamp or skip through these instead of raising.
"""

import math
from decimal import Decimal
from typing import Any


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def is_finite_positive(value: Any) -> bool:
    """
    True when value is a real, finite number strictly greater than zero.

    Examples:
        >>> is_finite_positive(2.5)
        True
        >>> is_finite_positive(float("nan"))
        False
        >>> is_finite_positive(None)
        False
    """
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (ValueError, TypeError):
        return False
    return math.isfinite(number) and number > 0


def tick_decimals(tick_size: float) -> int:
    """
    Number of decimals needed to print prices on a tick grid.

    Examples:
        >>> tick_decimals(0.01)
        2
        >>> tick_decimals(0.25)
        2
        >>> tick_decimals(5)
        0
    """
    exponent = Decimal(str(tick_size)).normalize().as_tuple().exponent
    return max(0, -exponent)


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning default for zero/non-finite denominators or results.

    Args:
        numerator: Dividend
        denominator: Divisor
        default: Value returned when the division is degenerate

    Returns:
        numerator / denominator, or default
    """
    if denominator == 0 or not math.isfinite(denominator):
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Safely convert value to float (CLI and YAML inputs).

    Args:
        value: Value to convert (str, int, float, None, etc.)
        default: Default value if conversion fails

    Returns:
        Float value or default
    """
    if value is None or value == "" or value == " ":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default

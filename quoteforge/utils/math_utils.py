# quoteforge/utils/math_utils.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Quantization steps: rates and unit amounts keep 4 dp, money totals 2 dp
FOUR_DP = Decimal("0.0001")
TWO_DP = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert a value to Decimal without binary float noise.

    Floats are converted through ``str`` so that ``0.72`` becomes
    ``Decimal("0.72")`` rather than its binary expansion.

    Args:
        value: Value to convert (Decimal, int, float or numeric string)
        default: Value returned when ``value`` is None or blank

    Returns:
        Decimal value, or ``default``

    Raises:
        ValueError if the value is not numeric
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_half_up(value: Number, places: Decimal = TWO_DP) -> Decimal:
    """Round a value half-up to the given quantization step.

    Args:
        value: Value to round
        places: Quantization step, e.g. TWO_DP or FOUR_DP

    Returns:
        Rounded Decimal
    """
    return to_decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def round_money(value: Number) -> Decimal:
    """Round a money total to 2 decimal places, half-up."""
    return round_half_up(value, TWO_DP)


def round_rate(value: Number) -> Decimal:
    """Round a unit amount or ratio to 4 decimal places, half-up."""
    return round_half_up(value, FOUR_DP)


def round_to_int(value: Number) -> int:
    """Round half-up to the nearest integer."""
    return int(to_decimal(value).quantize(ONE, rounding=ROUND_HALF_UP))


def decimal_sum(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimals starting from an exact zero."""
    total = ZERO
    for value in values:
        total += value
    return total


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp a value into ``[lower, upper]``."""
    return max(lower, min(upper, value))


def format_percent(ratio: Number, places: int = 2) -> str:
    """Format a ratio as a percentage string, e.g. 0.1834 -> '18.34%'."""
    step = Decimal(1).scaleb(-places)
    return f"{round_half_up(to_decimal(ratio) * HUNDRED, step)}%"

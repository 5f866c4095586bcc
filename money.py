import math
from decimal import Decimal
from typing import Optional


def as_cents(value: object) -> Optional[int]:
    """
    Return ``value`` truncated toward zero when it is a finite number.

    Anything else (bools, strings, None, NaN, infinities) is treated as absent.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return math.trunc(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return int(value)
    return None


def trunc_div(numerator: int, denominator: int) -> int:
    if denominator == 0:
        raise ZeroDivisionError("division by zero")
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, rest = divmod(abs(cents), 100)
    return f"{sign}{whole}.{rest:02d}"

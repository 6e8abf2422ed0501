# marketplace/domain/money.py
"""
Integer-cents helpers. Every amount is converted to cents on the way in
and formatted back to a two-decimal string (or Decimal) on the way out.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("1")


def _to_decimal(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        #str() keeps 0.1 as 0.1 instead of its binary expansion
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


def round_half_up(value) -> int:
    return int(_to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def to_cents(usd) -> int:
    """USD amount (Decimal, str, int or float) -> integer cents, round half up."""
    return round_half_up(_to_decimal(usd) * 100)


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(Decimal("0.01"))


def format_cents(cents: int) -> str:
    return f"{cents_to_decimal(cents):.2f}"


def percent_of(cents: int, pct) -> int:
    return round_half_up(Decimal(int(cents)) * _to_decimal(pct) / 100)

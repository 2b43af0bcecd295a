"""
Currency helpers. Amounts are stored in cents; Adumo works in rand with two decimals.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS_PER_RAND = 100


def cents_to_decimal_string(cents: int) -> str:
    """1234567 -> "12345.67"."""
    value = (Decimal(int(cents)) / CENTS_PER_RAND).quantize(Decimal("0.01"))
    return format(value, "f")


def to_minor_units(amount) -> int:
    """Convert a gateway amount in rand (str, int or float) to cents.

    Raises ValueError when the value is not numeric.
    """
    if isinstance(amount, bool) or amount is None:
        raise ValueError(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip()).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    return int(value * CENTS_PER_RAND)

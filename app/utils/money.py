from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from app.core.exceptions import ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a number/string into a 2 decimal place Decimal.
    Floats go through str() so 0.1 stays 0.10 and not 0.1000000000000000055.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def positive_money(value: Any, field: str = "amount") -> Decimal:
    amount = to_money(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    return amount


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if not whole:
        return ZERO
    return (part / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_or_zero(value: Optional[Any]) -> Decimal:
    """SQL SUM() yields None on an empty set."""
    if value is None:
        return ZERO
    return to_money(value)

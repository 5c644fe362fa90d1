"""
Currency Module

Single-denomination (USD) amounts with proper Decimal precision.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .errors import InvalidArgumentError

# Set global decimal context for financial precision
getcontext().prec = 28

CURRENCY_CODE = "USD"
PRECISION = 2
ZERO = Decimal("0.00")

_QUANTUM = Decimal("0.1") ** PRECISION


def to_amount(value: Union[Decimal, int, str]) -> Decimal:
    """
    Convert a value to a Decimal rounded to currency precision.

    Floats are converted through ``str`` so that ``0.1`` stays ``0.10``.

    Raises:
        InvalidArgumentError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidArgumentError(f"Not a valid amount: {value!r}")

    if not amount.is_finite():
        raise InvalidArgumentError(f"Not a valid amount: {value!r}")

    try:
        return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the context precision can hold at two decimals
        raise InvalidArgumentError(f"Amount is too large: {value!r}")


def require_positive(value: Union[Decimal, int, str]) -> Decimal:
    """Convert to an amount and reject zero or negative values"""
    amount = to_amount(value)
    if amount <= ZERO:
        raise InvalidArgumentError(f"Amount must be positive, got {amount}")
    return amount


def format_amount(amount: Decimal) -> str:
    """Format for display, e.g. ``-$1,234.50``"""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.{PRECISION}f}"

"""
Fixed-precision money helpers.

All ledger arithmetic happens on Decimal values quantized to two
minor-unit digits. Floats are never accepted silently: they are
converted through str() so 0.1 stays 0.1.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Amounts at or below this magnitude are treated as exactly zero
DEFAULT_TOLERANCE = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a two-place Decimal using half-up rounding.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[MoneyLike]) -> Decimal:
    """Exact sum of monetary values; order of the inputs does not matter."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def is_zero(amount: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """True if the amount is within tolerance of zero (inclusive)."""
    return abs(amount) <= tolerance


def format_money(amount: MoneyLike, currency: str = "INR") -> str:
    """
    Format an amount for display, e.g. ₹1,200.00 or -$12.34.

    Presentation helper only; nothing in the balance or settlement
    code calls this.
    """
    value = to_money(amount)
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")

    if currency.upper() == "JPY":
        body = f"{abs(value):,.0f}"
    else:
        body = f"{abs(value):,.2f}"

    if value < 0:
        return f"-{symbol}{body}"
    return f"{symbol}{body}"

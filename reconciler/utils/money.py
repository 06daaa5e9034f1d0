"""
Money primitives.

All amounts inside the engine are integer milliunits (1/1000 of the currency
unit). Conversions go through Decimal so that no float rounding leaks into
comparisons.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Union

MILLI_PER_UNIT = 1000
CENTS_TO_MILLI = 10

Numeric = Union[Decimal, int, float, str]

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "$",
    "AUD": "$",
    "MXN": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}


def to_decimal(value: Numeric) -> Decimal:
    """
    Parse a numeric value into a finite Decimal.

    Raises:
        ValueError: if the value is not numeric or not finite
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid money amount: {value!r}")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Invalid money amount: {value!r}")
    else:
        raise ValueError(f"Invalid money amount: {value!r}")

    if not parsed.is_finite():
        raise ValueError(f"Money amount must be finite: {value!r}")
    return parsed


def to_milli(value: Numeric) -> int:
    """Convert a currency amount to integer milliunits (half-up)."""
    amount = to_decimal(value)
    return int((amount * MILLI_PER_UNIT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_milli(milli: int) -> Decimal:
    """Convert milliunits back to a Decimal amount in currency units."""
    return Decimal(milli) / MILLI_PER_UNIT


def cents_to_milli(cents: int) -> int:
    return int(cents) * CENTS_TO_MILLI


def tolerance_milli(amount_tolerance_cents: int) -> int:
    """Amount tolerance in milliunits. Negative tolerances clamp to zero."""
    return cents_to_milli(max(0, amount_tolerance_cents))


def balance_tolerance_milli(amount_tolerance_cents: int) -> int:
    """Balance tolerance in milliunits, never tighter than one cent."""
    return max(tolerance_milli(amount_tolerance_cents), CENTS_TO_MILLI)


def add_milli(*values: int) -> int:
    total = 0
    for value in values:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"Milliunit values must be integers: {value!r}")
        total += value
    return total


def format_money(milli: int, currency: str = "USD") -> str:
    """Render milliunits as a signed currency string, e.g. -$1,234.56."""
    amount = from_milli(abs(milli)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    sign = "-" if milli < 0 else ""
    if symbol:
        return f"{sign}{symbol}{amount:,.2f}"
    return f"{sign}{amount:,.2f} {currency.upper()}"


@dataclass(frozen=True)
class MoneyValue:
    """An amount carried with its display form and direction."""
    value_milliunits: int
    value: Decimal
    value_display: str
    currency: str
    direction: str  # credit, debit or balance

    @classmethod
    def from_milli(
        cls,
        milli: int,
        currency: str = "USD",
        direction: str = "balance",
    ) -> "MoneyValue":
        return cls(
            value_milliunits=milli,
            value=from_milli(milli),
            value_display=format_money(milli, currency),
            currency=currency,
            direction=direction,
        )

    @classmethod
    def signed(cls, milli: int, currency: str = "USD") -> "MoneyValue":
        """Money value whose direction follows its sign."""
        return cls.from_milli(milli, currency, direction="credit" if milli >= 0 else "debit")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value_milliunits": self.value_milliunits,
            "value": float(self.value),
            "value_display": self.value_display,
            "currency": self.currency,
            "direction": self.direction,
        }

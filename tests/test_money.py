"""
Tests for money primitives.
"""

import pytest
from decimal import Decimal

from reconciler.utils.money import (
    MoneyValue,
    add_milli,
    balance_tolerance_milli,
    format_money,
    from_milli,
    to_decimal,
    to_milli,
    tolerance_milli,
)


class TestConversion:
    """Decimal <-> milliunit conversion."""

    def test_to_milli_exact(self):
        assert to_milli(Decimal("22.22")) == 22220
        assert to_milli("-47.97") == -47970
        assert to_milli(15) == 15000

    def test_float_input_goes_through_str(self):
        assert to_milli(0.1) == 100
        assert to_milli(15.99) == 15990

    def test_half_up_rounding(self):
        assert to_milli("0.0005") == 1
        assert to_milli("-0.0005") == -1

    def test_from_milli(self):
        assert from_milli(22220) == Decimal("22.22")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", "abc", "", "12,34"])
    def test_invalid_literals_fail(self, value):
        """Non-finite or non-numeric amounts never become zero."""
        with pytest.raises(ValueError):
            to_milli(value)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), None, True, [1]])
    def test_invalid_objects_fail(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestTolerance:
    """Tolerances derived from amount_tolerance_cents."""

    def test_amount_tolerance(self):
        assert tolerance_milli(1) == 10
        assert tolerance_milli(0) == 0
        assert tolerance_milli(-5) == 0

    def test_balance_tolerance_floor(self):
        assert balance_tolerance_milli(0) == 10
        assert balance_tolerance_milli(25) == 250

    def test_add_milli_rejects_non_int(self):
        assert add_milli(1, 2, -3) == 0
        with pytest.raises(ValueError):
            add_milli(1, 2.5)


class TestFormatting:
    """Display strings."""

    def test_format_usd(self):
        assert format_money(1234560) == "$1,234.56"
        assert format_money(-22220) == "-$22.22"

    def test_format_unknown_currency(self):
        assert format_money(5000, "CHF") == "5.00 CHF"

    def test_money_value_direction(self):
        assert MoneyValue.signed(-10).direction == "debit"
        assert MoneyValue.signed(10).direction == "credit"
        value = MoneyValue.from_milli(22220, "EUR")
        assert value.to_dict() == {
            "value_milliunits": 22220,
            "value": 22.22,
            "value_display": "€22.22",
            "currency": "EUR",
            "direction": "balance",
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

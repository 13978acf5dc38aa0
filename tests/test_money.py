"""
Tests for Decimal money helpers
"""

import pytest
from decimal import Decimal

from loancalc.errors import InvalidInputError
from loancalc.money import to_decimal, optional_decimal, round2, gst_on, split_evenly


class TestToDecimal:
    """Test numeric conversion"""

    def test_float_goes_through_string(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_strings_and_ints(self):
        assert to_decimal("1000.50") == Decimal("1000.50")
        assert to_decimal(42) == Decimal("42")

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity"])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(InvalidInputError):
            to_decimal(value)

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            to_decimal("abc")

    def test_optional_decimal(self):
        assert optional_decimal(None) is None
        assert optional_decimal("") is None
        assert optional_decimal("5") == Decimal("5")


class TestRounding:
    """Test paise rounding"""

    def test_round_half_up(self):
        assert round2(Decimal("0.125")) == Decimal("0.13")
        assert round2(Decimal("250.456")) == Decimal("250.46")
        assert round2(Decimal("2.345")) == Decimal("2.35")

    def test_gst_on(self):
        assert gst_on(Decimal("333.33")) == Decimal("60.00")
        assert gst_on(Decimal("1000")) == Decimal("180.00")


class TestSplitEvenly:
    """Test EMI principal shares"""

    def test_remainder_on_last_share(self):
        shares = split_evenly(Decimal("10000"), 3)

        assert shares == [Decimal("3333.33"), Decimal("3333.33"), Decimal("3333.34")]
        assert sum(shares) == Decimal("10000")

    def test_even_split(self):
        assert split_evenly(Decimal("30000"), 3) == [Decimal("10000.00")] * 3

    def test_rejects_zero_parts(self):
        with pytest.raises(InvalidInputError):
            split_evenly(Decimal("100"), 0)

"""
Tests for the tiered DPD penalty engine
"""

import pytest
from decimal import Decimal
from datetime import date

from loancalc.loans import ProcessedSnapshot
from loancalc.penalty import (
    penalty_percent, days_past_due, calculate_penalty, penalty_as_of, frozen_penalty
)


class TestPenaltyPercent:
    """Test the percent tiers"""

    @pytest.mark.parametrize("dpd,percent", [
        (-3, "0"), (0, "0"), (1, "5"), (2, "1"), (5, "4"), (10, "9"),
        (11, "9.6"), (15, "12"), (120, "75"), (121, "0"), (130, "0"),
    ])
    def test_tiers(self, dpd, percent):
        assert penalty_percent(dpd) == Decimal(percent)


class TestCalculatePenalty:
    """Test penalty amounts on a principal of 100000"""

    principal = Decimal("100000")

    def test_no_penalty_when_not_overdue(self):
        for dpd in (-10, -1, 0):
            result = calculate_penalty(self.principal, dpd)
            assert result.total == Decimal("0")
            assert result.dpd == 0

    def test_first_day(self):
        result = calculate_penalty(self.principal, 1)

        assert result.base == Decimal("5000")
        assert result.gst == Decimal("900")
        assert result.total == Decimal("5900")

    def test_early_tier(self):
        assert calculate_penalty(self.principal, 5).base == Decimal("4000")

    def test_late_tier(self):
        result = calculate_penalty(self.principal, 15)

        assert result.base == Decimal("12000")
        assert result.gst == Decimal("2160")
        assert result.dpd == 15

    def test_beyond_cap(self):
        assert calculate_penalty(self.principal, 130).total == Decimal("0")

    def test_amounts_rounded_to_paise(self):
        result = calculate_penalty(Decimal("3333.33"), 11)
        # 3333.33 x 9.6% = 319.99968
        assert result.base == Decimal("320.00")
        assert result.gst == Decimal("57.60")


class TestDaysPastDue:
    """Test DPD counting"""

    def test_dpd(self):
        assert days_past_due("2025-01-10", "2025-01-15") == 5

    def test_dpd_floored_at_zero(self):
        assert days_past_due("2025-01-10", "2025-01-05") == 0
        assert days_past_due(None, "2025-01-05") == 0

    def test_penalty_as_of(self):
        result = penalty_as_of(Decimal("100000"), "2025-01-10", "2025-01-11")
        assert result.base == Decimal("5000")


class TestFrozenPenalty:
    """Test snapshot penalties"""

    def test_reads_snapshot_values(self):
        snapshot = ProcessedSnapshot(
            principal=Decimal("10000"), interest=Decimal("150"), penalty=Decimal("400"),
            gst=Decimal("72"), processing_fee=Decimal("1000"), post_service_fee=Decimal("500"),
            due_date=date(2025, 1, 15)
        )
        result = frozen_penalty(snapshot, "2025-03-01")

        assert result.base == Decimal("400")
        assert result.gst == Decimal("72")
        assert result.total == Decimal("472")
        assert result.dpd == 45

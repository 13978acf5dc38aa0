"""
Tests for loan extensions
"""

import pytest
from decimal import Decimal
from datetime import date

from loancalc.errors import InvalidInputError
from loancalc.extensions import (
    check_extension_eligibility, calculate_new_due_dates, calculate_extension_fees,
    calculate_outstanding_balance
)
from loancalc.loans import FeeLine, Loan, LoanPlan, ProcessedSnapshot, RawEmiEntry


def make_loan(**kwargs):
    params = dict(
        id="L1",
        principal=Decimal("10000"),
        status="account_manager",
        disbursed_date="2025-01-01",
        due_date="2025-01-15",
        rate_per_day=Decimal("0.001"),
    )
    params.update(kwargs)
    return Loan(**params)


class TestEligibility:
    """Test the extension window and limits"""

    def test_eligible_inside_window(self):
        result = check_extension_eligibility(make_loan(), "2025-01-12")

        assert result.eligible
        assert result.window_start == date(2025, 1, 10)
        assert result.window_end == date(2025, 1, 30)

    def test_window_boundaries_inclusive(self):
        assert check_extension_eligibility(make_loan(), "2025-01-10").eligible
        assert check_extension_eligibility(make_loan(), "2025-01-30").eligible

    def test_too_early(self):
        result = check_extension_eligibility(make_loan(), "2025-01-09")

        assert not result.eligible
        assert "opens on 2025-01-10" in result.reason

    def test_too_late(self):
        result = check_extension_eligibility(make_loan(), "2025-01-31")

        assert not result.eligible
        assert "expired on 2025-01-30" in result.reason

    def test_max_extensions(self):
        assert not check_extension_eligibility(make_loan(extension_count=4), "2025-01-12").eligible

    def test_pending_request_blocks(self):
        assert not check_extension_eligibility(make_loan(extension_pending=True), "2025-01-12").eligible

    def test_only_first_emi(self):
        assert not check_extension_eligibility(make_loan(), "2025-01-12", emi_index=1).eligible
        assert check_extension_eligibility(make_loan(), "2025-01-12", emi_index=0).eligible

    def test_undisbursed_loan(self):
        result = check_extension_eligibility(make_loan(disbursed_date=None, status="approved"), "2025-01-12")
        assert not result.eligible


class TestNewDueDates:
    """Test shifted due dates"""

    def test_fixed_plan_adds_fifteen_days(self):
        result = calculate_new_due_dates(make_loan())

        assert result.new_due_date == date(2025, 1, 30)
        assert result.extension_period_days == 15
        assert result.new_emi_dates == ()

    def test_single_salary_plan(self):
        loan = make_loan(due_date="2025-01-05", salary_day=5, plan=LoanPlan(calculate_by_salary_date=True))
        result = calculate_new_due_dates(loan)

        assert result.new_due_date == date(2025, 2, 5)
        assert result.extension_period_days == 32

    def test_multi_emi_salary_plan(self):
        loan = make_loan(
            due_date=None,
            salary_day=5,
            plan=LoanPlan(plan_type="multi_emi", emi_count=2, emi_frequency="monthly",
                          calculate_by_salary_date=True),
            emi_schedule_raw=[
                RawEmiEntry(1, date(2025, 2, 5), Decimal("5500")),
                RawEmiEntry(2, date(2025, 3, 5), Decimal("5500")),
            ]
        )
        result = calculate_new_due_dates(loan)

        assert result.new_emi_dates == (date(2025, 3, 5), date(2025, 4, 5))
        assert result.new_due_date == date(2025, 4, 5)
        assert result.extension_period_days == 32

    def test_no_due_date(self):
        with pytest.raises(InvalidInputError):
            calculate_new_due_dates(make_loan(due_date=None))


class TestExtensionFees:
    """Test extension amounts"""

    def test_fee_gst_and_interest(self):
        result = calculate_extension_fees(make_loan(), "2025-01-15")

        assert result.extension_fee == Decimal("2100")
        assert result.gst_amount == Decimal("378")
        assert result.interest_till_date == Decimal("150")
        assert result.total_extension_amount == Decimal("2628.00")
        assert result.interest_days == 15

    def test_frozen_loan_uses_snapshot_principal(self):
        loan = make_loan()
        loan.freeze(ProcessedSnapshot(
            principal=Decimal("8000"), interest=Decimal("120"), penalty=Decimal("0"), gst=Decimal("0"),
            processing_fee=Decimal("800"), post_service_fee=Decimal("400")
        ))
        result = calculate_extension_fees(loan, "2025-01-15")

        assert result.extension_fee == Decimal("1680")
        assert result.post_service_fee == Decimal("400")

    def test_undisbursed_loan_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_extension_fees(make_loan(disbursed_date=None), "2025-01-15")


class TestOutstandingBalance:
    """Test outstanding balance quoted with an extension"""

    def test_principal_plus_post_service_fee_with_gst(self):
        loan = make_loan(fees_breakdown=[FeeLine("Post Service Fee", Decimal("500"), Decimal("90"))])
        assert calculate_outstanding_balance(loan) == Decimal("10590.00")

    def test_without_post_service_fee(self):
        assert calculate_outstanding_balance(make_loan()) == Decimal("10000")

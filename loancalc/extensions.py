"""
Loan Extension Module

Handles extension eligibility, shifted due dates, extension fees and the
outstanding balance quoted alongside an extension.

Extensions open 5 days before the (first) due date and close 15 days after
it; a loan can be extended at most 4 times and only through its first EMI.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Optional, Tuple

from .dates import DateLike, days_difference, inclusive_days, parse_date, salary_date_for_month, shift_days
from .errors import InvalidInputError
from .fees import FeeCategory, resolve_fee
from .interest import interest_till_date
from .loans import Loan
from .money import GST_RATE, ZERO, round2
from .results import CalculationResult


EXTENSION_FEE_RATE = Decimal('0.21')
MAX_EXTENSIONS = 4
EXTENSION_WINDOW_BEFORE = 5     # days before due date
EXTENSION_WINDOW_AFTER = 15     # days after due date
FIXED_EXTENSION_DAYS = 15


@dataclass(frozen=True)
class ExtensionEligibility:
    """Whether an extension can be requested, and the window it must fall in"""
    eligible: bool
    reason: Optional[str] = None
    window_start: Optional[date] = None
    window_end: Optional[date] = None


@dataclass(frozen=True)
class ExtensionDates:
    """Due dates after an extension"""
    new_due_date: date
    new_emi_dates: Tuple[date, ...]
    extension_period_days: int


@dataclass(frozen=True)
class ExtensionFees:
    """Amount payable to extend a loan"""
    extension_fee: Decimal
    gst_amount: Decimal
    interest_till_date: Decimal
    total_extension_amount: Decimal
    interest_days: int
    post_service_fee: Decimal


def _principal(loan: Loan) -> Decimal:
    if loan.is_frozen:
        return loan.processed_snapshot.principal
    return loan.principal


def check_extension_eligibility(
    loan: Loan,
    as_of: DateLike,
    emi_index: Optional[int] = None,
    max_extensions: int = MAX_EXTENSIONS,
    window_before: int = EXTENSION_WINDOW_BEFORE,
    window_after: int = EXTENSION_WINDOW_AFTER
) -> ExtensionEligibility:
    """
    Check if loan is eligible for extension on a given date

    Args:
        loan: Loan to extend
        as_of: Date of the request
        emi_index: EMI being extended (0 for first EMI, None for single payment)

    Returns:
        ExtensionEligibility
    """
    as_of = parse_date(as_of)

    if loan.disbursed_date is None:
        return ExtensionEligibility(False, "Loan must be processed before extension can be requested")

    if loan.extension_count >= max_extensions:
        return ExtensionEligibility(False, f"Maximum {max_extensions} extensions already availed")

    if loan.extension_pending:
        return ExtensionEligibility(False, "A pending extension request already exists")

    if emi_index is not None and emi_index != 0:
        return ExtensionEligibility(False, "Only the first EMI can be extended")

    due = loan.first_due_date
    if due is None:
        return ExtensionEligibility(False, "Due date not found")

    window_start = shift_days(due, -window_before)
    window_end = shift_days(due, window_after)
    days_until_due = days_difference(as_of, due)

    if days_until_due > window_before:
        return ExtensionEligibility(False, f"Extension window opens on {window_start.isoformat()}",
                                    window_start, window_end)
    if days_until_due < -window_after:
        return ExtensionEligibility(False, f"Extension window expired on {window_end.isoformat()}",
                                    window_start, window_end)

    return ExtensionEligibility(True, None, window_start, window_end)


def calculate_new_due_dates(
    loan: Loan,
    salary_day: Optional[int] = None,
    fixed_days: int = FIXED_EXTENSION_DAYS
) -> ExtensionDates:
    """
    Due dates after extending the loan

    Fixed-day plans push every due date out by `fixed_days`. Salary-date
    plans move each due date to the following month's salary date; the
    extension period is then the gap between the first two new EMI dates
    (multi-EMI) or between the old and new due date (single payment).

    Raises:
        InvalidInputError: If the loan has no due date
    """
    salary_day = salary_day or loan.salary_day
    by_salary_date = bool(loan.plan and loan.plan.calculate_by_salary_date and salary_day)

    original = [entry.due_date for entry in loan.emi_schedule_raw]
    if not original and loan.first_due_date is not None:
        original = [loan.first_due_date]
    if not original:
        raise InvalidInputError(f"Loan {loan.id} has no due date to extend")

    if by_salary_date:
        new_dates = tuple(salary_date_for_month(d, salary_day, 1) for d in original)
        if len(new_dates) >= 2:
            period = days_difference(new_dates[0], new_dates[1]) + 1
        else:
            period = days_difference(original[0], new_dates[0]) + 1
    else:
        new_dates = tuple(shift_days(d, fixed_days) for d in original)
        period = fixed_days

    return ExtensionDates(
        new_due_date=new_dates[-1],
        new_emi_dates=new_dates if loan.is_multi_emi else (),
        extension_period_days=period
    )


def calculate_extension_fees(
    loan: Loan,
    as_of: DateLike,
    remote: Optional[CalculationResult] = None,
    fee_rate: Decimal = EXTENSION_FEE_RATE,
    gst_rate: Decimal = GST_RATE
) -> ExtensionFees:
    """
    Extension fee (21% of principal), its GST and interest accrued to date

    Raises:
        InvalidInputError: If the loan was never disbursed
    """
    if loan.disbursed_date is None:
        raise InvalidInputError(f"Loan {loan.id} has no disbursal date")

    principal = _principal(loan)
    fee = principal * fee_rate
    gst = fee * gst_rate
    interest = interest_till_date(principal, loan.effective_rate_per_day, loan.disbursed_date, as_of)

    return ExtensionFees(
        extension_fee=round2(fee),
        gst_amount=round2(gst),
        interest_till_date=round2(interest),
        total_extension_amount=round2(fee + gst + interest),
        interest_days=inclusive_days(loan.disbursed_date, as_of),
        post_service_fee=_post_service_fee(loan, remote, gst_rate)
    )


def _post_service_fee(loan: Loan, remote: Optional[CalculationResult], gst_rate: Decimal) -> Decimal:
    if loan.is_frozen and loan.processed_snapshot.post_service_fee != ZERO:
        return loan.processed_snapshot.post_service_fee
    return resolve_fee(FeeCategory.POST_SERVICE, remote, loan.fees_breakdown, gst_rate).base


def calculate_outstanding_balance(
    loan: Loan,
    remote: Optional[CalculationResult] = None,
    gst_rate: Decimal = GST_RATE
) -> Decimal:
    """Principal plus post service fee plus GST on that fee"""
    principal = _principal(loan)
    post_service_fee = _post_service_fee(loan, remote, gst_rate)
    return round2(principal + post_service_fee + post_service_fee * gst_rate)


@dataclass(frozen=True)
class ExtensionQuote:
    """Eligibility plus, when eligible, the shifted dates and amounts due"""
    eligibility: ExtensionEligibility
    dates: Optional[ExtensionDates] = None
    fees: Optional[ExtensionFees] = None
    outstanding_balance: Optional[Decimal] = None

    def to_dict(self) -> dict:
        data = {
            "eligible": self.eligibility.eligible,
            "reason": self.eligibility.reason,
            "windowStart": self.eligibility.window_start.isoformat() if self.eligibility.window_start else None,
            "windowEnd": self.eligibility.window_end.isoformat() if self.eligibility.window_end else None,
        }
        if self.dates:
            data["newDueDate"] = self.dates.new_due_date.isoformat()
            data["newEmiDates"] = [d.isoformat() for d in self.dates.new_emi_dates]
            data["extensionPeriodDays"] = self.dates.extension_period_days
        if self.fees:
            data["extensionFee"] = str(self.fees.extension_fee)
            data["gstAmount"] = str(self.fees.gst_amount)
            data["interestTillDate"] = str(self.fees.interest_till_date)
            data["totalExtensionAmount"] = str(self.fees.total_extension_amount)
            data["interestDays"] = self.fees.interest_days
        if self.outstanding_balance is not None:
            data["outstandingBalance"] = str(self.outstanding_balance)
        return data

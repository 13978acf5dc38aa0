"""
Day-Count Utility Module

Calendar-date arithmetic for interest and penalty accrual. Dates are naive
YYYY-MM-DD values: no timezone conversion happens anywhere, so a loan
disbursed late in the evening still accrues from its calendar date.

Both the start and the end date count as accrual days.
"""

from datetime import date, datetime, timedelta
from dataclasses import dataclass
from typing import Optional, Union
import calendar
import re

from .errors import InvalidInputError


DateLike = Union[date, datetime, str]

_DATE_PREFIX = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[ T].*)?$')


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """
    Normalize a date-like value to a calendar date

    Accepts date objects, datetimes (their calendar part, tzinfo ignored),
    "YYYY-MM-DD", "YYYY-MM-DD HH:MM:SS" and ISO "YYYY-MM-DDTHH:MM:SSZ" strings.

    Raises:
        InvalidInputError: If the value is not a recognizable date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = _DATE_PREFIX.match(value.strip())
        if match:
            year, month, day = (int(part) for part in match.groups())
            try:
                return date(year, month, day)
            except ValueError:
                pass
    raise InvalidInputError(f"Malformed date: {value!r}")


def days_difference(d1: DateLike, d2: DateLike) -> int:
    """Calendar days from d1 to d2 (negative when d2 is earlier)"""
    start = parse_date(d1)
    end = parse_date(d2)
    if start is None or end is None:
        raise InvalidInputError("Both dates are required")
    return (end - start).days


def inclusive_days(start: DateLike, end: DateLike) -> int:
    """Accrual days between two dates, counting both ends, never less than 1"""
    return max(1, days_difference(start, end) + 1)


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_to_month(year: int, month: int, day: int) -> date:
    """Build a date, using the month's last day when `day` does not exist (Feb 31)"""
    return date(year, month, min(day, last_day_of_month(year, month)))


def add_months(value: date, months: int) -> tuple:
    """Return (year, month) shifted by a number of months"""
    index = value.year * 12 + (value.month - 1) + months
    return index // 12, index % 12 + 1


def _validate_salary_day(target_day: int) -> int:
    if not isinstance(target_day, int) or not 1 <= target_day <= 31:
        raise InvalidInputError(f"Salary day must be between 1 and 31, got {target_day!r}")
    return target_day


def next_salary_date(start: DateLike, target_day: int) -> date:
    """
    First salary date strictly after `start`

    Args:
        start: Date to count from
        target_day: Day of month salary is credited (1-31)

    Returns:
        Salary date in start's month when still ahead, otherwise the next month
    """
    start_date = parse_date(start)
    _validate_salary_day(target_day)

    candidate = clamp_to_month(start_date.year, start_date.month, target_day)
    if candidate <= start_date:
        year, month = add_months(start_date, 1)
        candidate = clamp_to_month(year, month, target_day)
    return candidate


def salary_date_for_month(start: DateLike, target_day: int, month_offset: int = 0) -> date:
    """Salary date `month_offset` months after start's month"""
    start_date = parse_date(start)
    _validate_salary_day(target_day)
    year, month = add_months(start_date, month_offset)
    return clamp_to_month(year, month, target_day)


@dataclass(frozen=True)
class InterestDays:
    """Result of the plan-based interest-day calculation"""
    days: int
    method: str                         # fixed, salary_date or custom
    repayment_date: Optional[date] = None


def calculate_interest_days(
    plan,
    salary_day: Optional[int],
    as_of: DateLike,
    default_days: int = 15
) -> InterestDays:
    """
    Days of interest a plan charges when booked on `as_of`

    Fixed plans charge their repayment days. Salary-date plans run to the
    borrower's salary date: single-payment plans move month by month until
    the inclusive distance covers the plan's minimum days; monthly multi-EMI
    plans take the next salary date, or the one after when it is too close.

    Args:
        plan: LoanPlan
        salary_day: Borrower's salary day of month, or None
        as_of: Booking date
        default_days: Days used when the plan does not define any

    Returns:
        InterestDays
    """
    today = parse_date(as_of)
    days = plan.repayment_days or default_days

    if not plan.calculate_by_salary_date or not salary_day or not 1 <= salary_day <= 31:
        return InterestDays(days=days, method="fixed")

    if plan.plan_type == "single":
        target = next_salary_date(today, salary_day)
        days_to_target = days_difference(today, target) + 1
        while days_to_target < days:
            target = salary_date_for_month(target, salary_day, 1)
            days_to_target = days_difference(today, target) + 1
        return InterestDays(days=days_to_target, method="salary_date", repayment_date=target)

    if plan.plan_type == "multi_emi" and plan.emi_frequency == "monthly":
        target = next_salary_date(today, salary_day)
        days_to_target = days_difference(today, target) + 1
        if days_to_target < days:
            target = salary_date_for_month(today, salary_day, 1)
            days_to_target = days_difference(today, target) + 1
        return InterestDays(days=days_to_target, method="salary_date", repayment_date=target)

    return InterestDays(days=days, method="fixed")


def shift_days(value: DateLike, days: int) -> date:
    return parse_date(value) + timedelta(days=days)

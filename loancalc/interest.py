"""
Interest Accrual Module

Simple daily-rate interest over inclusive calendar days. Multi-EMI loans
accrue each period on the principal still outstanding.

Full-tenure interest prefers the remote engine's aggregate; summing EMI
periods locally and the single-period formula are fallbacks only.
"""

from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import Optional, Sequence
import logging

from .dates import DateLike, days_difference, inclusive_days, parse_date
from .errors import InvalidInputError
from .money import ZERO, round2, split_evenly, to_decimal, require_non_negative

logger = logging.getLogger("loancalc.interest")


@dataclass(frozen=True)
class InterestBreakdown:
    """Interest section of a calculation result"""
    rate_per_day: Decimal
    exhausted_days: int
    total_interest_full_tenure: Decimal
    interest_till_today: Decimal


def interest_till_date(
    principal,
    rate_per_day,
    start_date: DateLike,
    as_of: DateLike
) -> Decimal:
    """
    Interest accrued from start_date to as_of, both days included

    Args:
        principal: Loan principal
        rate_per_day: Daily rate as a fraction (0.001 = 0.1% per day)
        start_date: Disbursal date
        as_of: Accrual end date

    Returns:
        Unrounded interest amount

    Raises:
        InvalidInputError: On negative principal/rate or malformed dates
    """
    principal = require_non_negative(to_decimal(principal, "principal"), "principal")
    rate = require_non_negative(to_decimal(rate_per_day, "rate_per_day"), "rate_per_day")
    return principal * rate * inclusive_days(start_date, as_of)


def exhausted_days(start_date: Optional[DateLike], as_of: DateLike) -> int:
    """Days elapsed since disbursal, inclusive; 0 before disbursal"""
    if start_date is None:
        return 0
    return max(0, days_difference(start_date, as_of) + 1)


def emi_periods(disbursed_date: DateLike, due_dates: Sequence[DateLike]) -> list:
    """
    Split the tenure into per-EMI accrual periods

    The first period starts on the disbursal date, every later one the day
    after the previous due date, so no day accrues twice.

    Returns:
        List of (start, end) date tuples
    """
    start = parse_date(disbursed_date)
    periods = []
    for due in sorted(parse_date(d) for d in due_dates):
        if due < start:
            raise InvalidInputError(f"EMI due date {due} precedes period start {start}")
        periods.append((start, due))
        start = due + timedelta(days=1)
    return periods


def emi_period_interest(
    principal,
    rate_per_day,
    disbursed_date: DateLike,
    due_dates: Sequence[DateLike]
) -> list:
    """
    Interest for each EMI period on the reducing balance

    Each period accrues on the principal still outstanding at its start and
    is rounded to paise. The outstanding principal then drops by that EMI's
    principal share.

    Returns:
        List of per-period interest amounts in due-date order
    """
    rate = require_non_negative(to_decimal(rate_per_day, "rate_per_day"), "rate_per_day")
    outstanding = require_non_negative(to_decimal(principal, "principal"), "principal")
    periods = emi_periods(disbursed_date, due_dates)

    amounts = []
    for (start, end), share in zip(periods, split_evenly(outstanding, len(periods))):
        amounts.append(round2(outstanding * rate * inclusive_days(start, end)))
        outstanding = round2(outstanding - share)
    return amounts


def total_interest_full_tenure(
    principal,
    rate_per_day,
    disbursed_date: Optional[DateLike],
    due_date: Optional[DateLike] = None,
    emi_due_dates: Optional[Sequence[DateLike]] = None,
    remote_total=None
) -> Decimal:
    """
    Interest over the whole tenure

    Precedence:
        1. remote_total, the engine's own aggregate
        2. sum of interest across each EMI period, on the reducing balance
        3. single formula from disbursal to due date

    Returns:
        Unrounded interest amount
    """
    if remote_total is not None:
        return to_decimal(remote_total, "total_interest_full_tenure")

    if disbursed_date is None:
        raise InvalidInputError("Disbursal date is required to compute tenure interest")

    if emi_due_dates:
        logger.debug("Summing tenure interest across %d EMI periods", len(emi_due_dates))
        return sum(emi_period_interest(principal, rate_per_day, disbursed_date, emi_due_dates), ZERO)

    if due_date is None:
        raise InvalidInputError("Due date or EMI schedule is required to compute tenure interest")
    return interest_till_date(principal, rate_per_day, disbursed_date, due_date)


def interest_breakdown(
    principal,
    rate_per_day,
    disbursed_date: Optional[DateLike],
    as_of: DateLike,
    due_date: Optional[DateLike] = None,
    emi_due_dates: Optional[Sequence[DateLike]] = None,
    remote_total=None
) -> InterestBreakdown:
    """Assemble the interest section for a loan as of a date"""
    rate = require_non_negative(to_decimal(rate_per_day, "rate_per_day"), "rate_per_day")

    if disbursed_date is None:
        # Not disbursed yet: nothing has accrued
        till_today = ZERO
    else:
        till_today = interest_till_date(principal, rate, disbursed_date, as_of)

    if remote_total is None and disbursed_date is None:
        full_tenure = ZERO
    else:
        full_tenure = total_interest_full_tenure(
            principal, rate, disbursed_date,
            due_date=due_date,
            emi_due_dates=emi_due_dates,
            remote_total=remote_total
        )

    return InterestBreakdown(
        rate_per_day=rate,
        exhausted_days=exhausted_days(disbursed_date, as_of),
        total_interest_full_tenure=full_tenure,
        interest_till_today=till_today
    )


"""
Penalty Engine Module

Tiered days-past-due penalty as a percentage of principal, with 18% GST.
Frozen loans read their penalty from the processed snapshot; the formulas
here are never applied to them.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional

from .dates import DateLike, days_difference
from .loans import ProcessedSnapshot
from .money import GST_RATE, HUNDRED, ZERO, round2, to_decimal, require_non_negative


# dpd 1: flat late fee
FIRST_DAY_PERCENT = Decimal('5')
# dpd 2-10: 1% per day after the first
EARLY_DAILY_PERCENT = Decimal('1')
# dpd 11-120: 9% plus 0.6% per day after the tenth
LATE_BASE_PERCENT = Decimal('9')
LATE_DAILY_PERCENT = Decimal('0.6')
MAX_PENALTY_DPD = 120


@dataclass(frozen=True)
class PenaltyBreakdown:
    """Penalty section of a calculation result"""
    dpd: int
    base: Decimal
    gst: Decimal
    total: Decimal

    @classmethod
    def zero(cls, dpd: int = 0) -> "PenaltyBreakdown":
        return cls(dpd=dpd, base=ZERO, gst=ZERO, total=ZERO)


def penalty_percent(dpd: int) -> Decimal:
    """
    Penalty percent of principal for a days-past-due count

    | dpd     | percent                |
    |---------|------------------------|
    | <= 0    | 0                      |
    | 1       | 5                      |
    | 2-10    | 1 x (dpd - 1)          |
    | 11-120  | 9 + 0.6 x (dpd - 10)   |
    | > 120   | 0                      |
    """
    if dpd <= 0:
        return ZERO
    if dpd == 1:
        return FIRST_DAY_PERCENT
    if dpd <= 10:
        return EARLY_DAILY_PERCENT * (dpd - 1)
    if dpd <= MAX_PENALTY_DPD:
        return LATE_BASE_PERCENT + LATE_DAILY_PERCENT * (dpd - 10)
    return ZERO


def days_past_due(due_date: Optional[DateLike], as_of: DateLike) -> int:
    """Days elapsed since the due date, floored at 0"""
    if due_date is None:
        return 0
    return max(0, days_difference(due_date, as_of))


def calculate_penalty(principal, dpd: int, gst_rate: Decimal = GST_RATE) -> PenaltyBreakdown:
    """
    Penalty and its GST for a days-past-due count

    Args:
        principal: Overdue principal
        dpd: Days past due (negative values count as 0)
        gst_rate: GST rate applied on the penalty

    Returns:
        PenaltyBreakdown with base, gst and total rounded to paise
    """
    principal = require_non_negative(to_decimal(principal, "principal"), "principal")
    dpd = max(0, int(dpd))

    percent = penalty_percent(dpd)
    if percent == ZERO:
        return PenaltyBreakdown.zero(dpd)

    base = round2(principal * percent / HUNDRED)
    gst = round2(base * gst_rate)
    return PenaltyBreakdown(dpd=dpd, base=base, gst=gst, total=base + gst)


def penalty_as_of(principal, due_date: Optional[DateLike], as_of: DateLike,
                  gst_rate: Decimal = GST_RATE) -> PenaltyBreakdown:
    return calculate_penalty(principal, days_past_due(due_date, as_of), gst_rate)


def frozen_penalty(snapshot: ProcessedSnapshot, as_of: Optional[DateLike] = None) -> PenaltyBreakdown:
    """Penalty as captured in the snapshot; dpd is informational only"""
    dpd = days_past_due(snapshot.due_date, as_of) if as_of is not None else 0
    return PenaltyBreakdown(
        dpd=dpd,
        base=snapshot.penalty,
        gst=snapshot.gst,
        total=snapshot.penalty_total
    )

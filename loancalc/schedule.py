"""
EMI Schedule Module

Merges authoritative schedule entries with per-period overdue penalties,
derives the total repayable and the pre-closure payoff.
"""

from decimal import Decimal
from typing import Sequence, Tuple

from .dates import DateLike, days_difference, parse_date
from .fees import ResolvedFee
from .loans import RawEmiEntry
from .money import GST_RATE, ZERO, round2, split_evenly, to_decimal, require_non_negative
from .penalty import PenaltyBreakdown, calculate_penalty
from .results import EmiScheduleEntry, PreClosure


PRE_CLOSE_FEE_RATE = Decimal('0.10')


def build_emi_schedule(
    raw_entries: Sequence[RawEmiEntry],
    principal,
    today: DateLike,
    loan_settled: bool = False,
    gst_rate: Decimal = GST_RATE
) -> Tuple[EmiScheduleEntry, ...]:
    """
    Inject overdue penalties into schedule entries

    An entry is penalized when its due date is strictly before today and
    neither the entry nor the loan is paid. The penalty uses the entry's own
    days past due, charged on the EMI's share of principal (floored to
    paise, with the remainder on the last EMI).

    Args:
        raw_entries: Entries from the engine or the loan record
        principal: Loan principal
        today: Reference date
        loan_settled: True when the loan is cleared
        gst_rate: GST on penalties

    Returns:
        Tuple of EmiScheduleEntry in due-date order
    """
    if not raw_entries:
        return ()

    principal = require_non_negative(to_decimal(principal, "principal"), "principal")
    today = parse_date(today)
    ordered = sorted(raw_entries, key=lambda entry: (entry.due_date, entry.emi_number))
    shares = split_evenly(principal, len(ordered))

    schedule = []
    for entry, principal_share in zip(ordered, shares):
        overdue = entry.due_date < today and not entry.is_paid and not loan_settled
        if overdue:
            penalty = calculate_penalty(principal_share, days_difference(entry.due_date, today), gst_rate)
        else:
            penalty = PenaltyBreakdown.zero()

        schedule.append(EmiScheduleEntry(
            emi_number=entry.emi_number,
            due_date=entry.due_date,
            base_emi_amount=entry.emi_amount,
            penalty_base=penalty.base,
            penalty_gst=penalty.gst,
            instalment_amount=entry.emi_amount + penalty.base + penalty.gst,
            status=entry.status,
            dpd=penalty.dpd
        ))
    return tuple(schedule)


def schedule_penalty(schedule: Sequence[EmiScheduleEntry]) -> PenaltyBreakdown:
    """Aggregate penalty across a schedule; dpd is the worst entry's"""
    base = sum((entry.penalty_base for entry in schedule), ZERO)
    gst = sum((entry.penalty_gst for entry in schedule), ZERO)
    dpd = max((entry.dpd for entry in schedule), default=0)
    return PenaltyBreakdown(dpd=dpd, base=base, gst=gst, total=base + gst)


def total_repayable(
    schedule: Sequence[EmiScheduleEntry],
    principal,
    post_service_fee: ResolvedFee,
    total_interest_full_tenure,
    penalty_total
) -> Decimal:
    """
    Total repayable

    Multi-installment loans repay the sum of their instalments. Single
    installment loans repay principal, post service fee with GST, tenure
    interest and penalty.
    """
    if len(schedule) > 1:
        return sum((entry.instalment_amount for entry in schedule), ZERO)

    principal = to_decimal(principal, "principal")
    return round2(
        principal
        + post_service_fee.base
        + post_service_fee.gst
        + to_decimal(total_interest_full_tenure, "total_interest_full_tenure")
        + to_decimal(penalty_total, "penalty_total")
    )


def calculate_pre_closure(
    principal,
    interest_till_today,
    fee_rate: Decimal = PRE_CLOSE_FEE_RATE,
    gst_rate: Decimal = GST_RATE
) -> PreClosure:
    """
    Pre-closure payoff

    Every intermediate is rounded to paise before the final sum.

    Args:
        principal: Loan principal
        interest_till_today: Unrounded accrued interest
        fee_rate: Pre-closure fee as a fraction of principal
        gst_rate: GST on the pre-closure fee

    Returns:
        PreClosure
    """
    principal = require_non_negative(to_decimal(principal, "principal"), "principal")
    interest = require_non_negative(to_decimal(interest_till_today, "interest_till_today"), "interest_till_today")

    fee = round2(principal * fee_rate)
    fee_gst = round2(fee * gst_rate)
    interest_rounded = round2(interest)
    amount = round2(principal + interest_rounded + fee + fee_gst)

    return PreClosure(
        principal=principal,
        interest_till_today=interest_rounded,
        fee=fee,
        fee_gst=fee_gst,
        amount=amount
    )


"""
Disbursal Amount Resolver Module

Decides whether a loan's stored disbursal amount can be trusted or the
figure must come from the remote engine.

    account_manager / cleared, not repeating  -> stored amount
    repeat_disbursal / ready_to_repeat        -> remote, stored ignored
    anything else                             -> remote

Reusing a stored figure on a renewed loan would pay out an amount computed
for an earlier disbursal cycle. The principal is never used as a stand-in.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional
from enum import Enum

from .fees import ResolvedFee
from .loans import Loan
from .money import round2, to_decimal


class DisbursalSource(Enum):
    STORED = "stored"
    REMOTE = "remote"
    PENDING = "pending"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DisbursalDecision:
    """Trusted disbursal figure, or why there is none yet"""
    amount: Optional[Decimal]
    source: DisbursalSource
    reason: str
    preview_amount: Optional[Decimal] = None

    @property
    def is_final(self) -> bool:
        return self.source in (DisbursalSource.STORED, DisbursalSource.REMOTE)


def trusts_stored_amount(loan: Loan) -> bool:
    """Check if the stored disbursal amount is authoritative for this loan"""
    return (
        loan.is_post_disbursal
        and not loan.is_repeat_disbursal
        and loan.stored_disbursal_amount is not None
    )


def requires_remote(loan: Loan) -> bool:
    return not trusts_stored_amount(loan)


def resolve_disbursal_amount(
    loan: Loan,
    remote_amount: Optional[Decimal] = None,
    in_flight: bool = False,
    preview_amount: Optional[Decimal] = None
) -> DisbursalDecision:
    """
    Apply the disbursal decision table

    Args:
        loan: Loan being disbursed or serviced
        remote_amount: Disbursal amount from the remote engine, if fetched
        in_flight: Whether a remote fetch for this loan is outstanding
        preview_amount: Local estimate, shown only while a fetch is pending

    Returns:
        DisbursalDecision
    """
    if trusts_stored_amount(loan):
        return DisbursalDecision(
            amount=loan.stored_disbursal_amount,
            source=DisbursalSource.STORED,
            reason=f"Loan already disbursed ({loan.status.value}); stored amount is final"
        )

    if remote_amount is not None:
        reason = "Computed by calculation service"
        if loan.is_repeat_disbursal and loan.stored_disbursal_amount is not None:
            reason = "Repeat disbursal; stored amount belongs to a previous cycle"
        return DisbursalDecision(
            amount=to_decimal(remote_amount, "disbursal_amount"),
            source=DisbursalSource.REMOTE,
            reason=reason
        )

    if in_flight:
        # Snapshot figures are never estimated locally
        preview = None if loan.is_frozen else preview_amount
        return DisbursalDecision(
            amount=None,
            source=DisbursalSource.PENDING,
            reason="Calculation in progress",
            preview_amount=preview
        )

    return DisbursalDecision(
        amount=None,
        source=DisbursalSource.UNAVAILABLE,
        reason="Calculation service result unavailable"
    )


def local_disbursal_amount(principal, processing_fee: ResolvedFee) -> Decimal:
    """Principal less the processing fee and its GST"""
    principal = to_decimal(principal, "principal")
    return round2(principal - processing_fee.base - processing_fee.gst)

"""
Fee Resolver Module

Resolves the processing fee (deducted from disbursal) and the post service
fee (added to the total repayable) together with their GST. Sources are
tried in order and the first one yielding a nonzero base amount wins:

    0. the versioned FeeBreakdown contract on the remote result
    1. the remote engine's itemized fee lines
    2. the loan's stored fees breakdown
    3. legacy aggregate totals on the remote result
    4. zero

The base amount is always used, never a total including GST, because GST
is reported as its own line.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple
from enum import Enum
import logging

from .loans import ADD_TO_TOTAL, DEDUCT_FROM_DISBURSAL, FeeLine, LoanPlan
from .money import GST_RATE, HUNDRED, ZERO, round2, to_decimal, require_non_negative
from .results import CalculationResult, FeeAmount, FeesSection, Totals

logger = logging.getLogger("loancalc.fees")


class FeeCategory(Enum):
    """Fee categories the resolver knows how to find"""
    PROCESSING = ("processing", DEDUCT_FROM_DISBURSAL)
    POST_SERVICE = ("post service", ADD_TO_TOTAL)

    def __init__(self, keyword: str, application_method: str):
        self.keyword = keyword
        self.application_method = application_method


class FeeSource(Enum):
    """Where a resolved fee came from"""
    CONTRACT = "contract"
    REMOTE_ITEMS = "remote_items"
    STORED_BREAKDOWN = "stored_breakdown"
    LEGACY_TOTALS = "legacy_totals"
    SNAPSHOT = "snapshot"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedFee:
    """A fee's base amount and GST with their provenance"""
    category: FeeCategory
    base: Decimal
    gst: Decimal
    source: FeeSource

    @property
    def total(self) -> Decimal:
        return self.base + self.gst

    def to_line(self, name: str) -> FeeLine:
        return FeeLine(
            name=name,
            base_amount=self.base,
            gst_amount=self.gst,
            application_method=self.category.application_method
        )


def find_fee_line(lines: Iterable[FeeLine], keyword: str) -> Optional[FeeLine]:
    """First line whose name contains keyword (case-insensitive) with a nonzero base"""
    for line in lines:
        if line.matches(keyword) and line.base_amount != ZERO:
            return line
    return None


def _from_line(category: FeeCategory, line: FeeLine, source: FeeSource, gst_rate: Decimal) -> ResolvedFee:
    gst = line.gst_amount if line.gst_amount is not None else round2(line.base_amount * gst_rate)
    return ResolvedFee(category=category, base=line.base_amount, gst=gst, source=source)


def _contract_amount(category: FeeCategory, remote: CalculationResult) -> Optional[FeeAmount]:
    if remote is None or remote.fee_breakdown is None:
        return None
    if category is FeeCategory.PROCESSING:
        return remote.fee_breakdown.processing_fee
    return remote.fee_breakdown.post_service_fee


def _legacy_amount(category: FeeCategory, totals: Optional[Totals]) -> Optional[FeeAmount]:
    if totals is None:
        return None
    if category is FeeCategory.PROCESSING:
        return FeeAmount(base=totals.disbursal_fee, gst=totals.disbursal_fee_gst)
    return FeeAmount(base=totals.repayable_fee, gst=totals.repayable_fee_gst)


def resolve_fee(
    category: FeeCategory,
    remote: Optional[CalculationResult] = None,
    stored_breakdown: Sequence[FeeLine] = (),
    gst_rate: Decimal = GST_RATE
) -> ResolvedFee:
    """
    Resolve one fee category through the precedence chain

    Args:
        category: Fee category to resolve
        remote: Result fetched from the remote engine, if any
        stored_breakdown: Loan's stored fee lines
        gst_rate: Rate used when a matched line carries no GST figure

    Returns:
        ResolvedFee; source NONE with zero amounts when nothing matched
    """
    contract = _contract_amount(category, remote)
    if contract is not None and contract.base != ZERO:
        return ResolvedFee(category, contract.base, contract.gst, FeeSource.CONTRACT)

    if remote is not None:
        line = find_fee_line(remote.fees.all_lines, category.keyword)
        if line is not None:
            return _from_line(category, line, FeeSource.REMOTE_ITEMS, gst_rate)

    line = find_fee_line(stored_breakdown, category.keyword)
    if line is not None:
        return _from_line(category, line, FeeSource.STORED_BREAKDOWN, gst_rate)

    legacy = _legacy_amount(category, remote.totals if remote is not None else None)
    if legacy is not None and legacy.base != ZERO:
        return ResolvedFee(category, legacy.base, legacy.gst, FeeSource.LEGACY_TOTALS)

    logger.debug("No %s fee found in any source", category.keyword)
    return ResolvedFee(category, ZERO, ZERO, FeeSource.NONE)


def resolve_fees(
    remote: Optional[CalculationResult],
    stored_breakdown: Sequence[FeeLine] = (),
    gst_rate: Decimal = GST_RATE
) -> Tuple[ResolvedFee, ResolvedFee]:
    """Resolve (processing fee, post service fee)"""
    return (
        resolve_fee(FeeCategory.PROCESSING, remote, stored_breakdown, gst_rate),
        resolve_fee(FeeCategory.POST_SERVICE, remote, stored_breakdown, gst_rate),
    )


@dataclass(frozen=True)
class PlanFees:
    """Fees computed from plan percentages"""
    fees: FeesSection
    totals: Totals


def compute_plan_fees(principal, plan: LoanPlan, gst_rate: Decimal = GST_RATE) -> PlanFees:
    """
    Compute fee lines from plan percentages

    Each fee is principal x percent / 100 with GST on top. Fees added to the
    total are charged once per EMI on multi-EMI plans.

    Args:
        principal: Loan principal
        plan: Plan whose fees apply
        gst_rate: GST rate

    Returns:
        PlanFees with itemized lines and totals, rounded to paise
    """
    principal = require_non_negative(to_decimal(principal, "principal"), "principal")
    multiplier = plan.emi_count if plan.is_multi_emi else 1

    deduct, add = [], []
    disbursal_fee = disbursal_gst = repayable_fee = repayable_gst = ZERO

    for fee in plan.fees:
        base = principal * fee.fee_percent / HUNDRED
        gst = base * gst_rate
        if fee.application_method == DEDUCT_FROM_DISBURSAL:
            deduct.append(FeeLine(fee.name, round2(base), round2(gst), fee.application_method, fee.fee_percent))
            disbursal_fee += base
            disbursal_gst += gst
        else:
            base, gst = base * multiplier, gst * multiplier
            add.append(FeeLine(fee.name, round2(base), round2(gst), fee.application_method, fee.fee_percent))
            repayable_fee += base
            repayable_gst += gst

    return PlanFees(
        fees=FeesSection(deduct_from_disbursal=tuple(deduct), add_to_total=tuple(add)),
        totals=Totals(
            disbursal_fee=round2(disbursal_fee),
            disbursal_fee_gst=round2(disbursal_gst),
            repayable_fee=round2(repayable_fee),
            repayable_fee_gst=round2(repayable_gst)
        )
    )

"""
Loan Calculator Module

Runs the calculation pipeline for a loan:

    interest -> penalty -> fees -> disbursal -> schedule -> totals -> pre-close

`preview` runs it entirely on local inputs and tags the result as a preview.
`assemble` completes a result fetched from the calculation service, filling
only the parts the service left out. Frozen loans take principal, interest,
penalty and fees from their processed snapshot.
"""

from decimal import Decimal
from datetime import date
from typing import Optional
import logging

from .config import LoanCalcConfig, get_config
from .dates import DateLike, calculate_interest_days, parse_date, shift_days
from .disbursal import local_disbursal_amount, resolve_disbursal_amount
from .errors import FrozenLoanError
from .extensions import (
    ExtensionQuote, calculate_extension_fees, calculate_new_due_dates,
    calculate_outstanding_balance, check_extension_eligibility
)
from .fees import FeeCategory, FeeSource, ResolvedFee, compute_plan_fees, resolve_fees
from .interest import InterestBreakdown, interest_breakdown
from .loans import FrozenLoan, Loan, LoanPlan, LoanStatus, ProcessedSnapshot
from .money import ZERO, round2
from .penalty import PenaltyBreakdown, frozen_penalty, penalty_as_of
from .results import (
    SOURCE_PREVIEW, CalculationResult, DisbursalSection, FeesSection, Totals
)
from .schedule import build_emi_schedule, calculate_pre_closure, schedule_penalty, total_repayable

logger = logging.getLogger("loancalc.calculator")

PROCESSING_FEE_NAME = "Processing Fee"
POST_SERVICE_FEE_NAME = "Post Service Fee"


class LoanCalculator:
    """Local calculation pipeline, parameterized by configured rates"""

    def __init__(self, config: Optional[LoanCalcConfig] = None):
        self.config = config or get_config()
        self.gst_rate = Decimal(self.config.gst_rate)
        self.pre_close_fee_rate = Decimal(self.config.pre_close_fee_rate)
        self.extension_fee_rate = Decimal(self.config.extension_fee_rate)

    def preview(self, loan: Loan, as_of: Optional[DateLike] = None) -> CalculationResult:
        """
        Estimate a loan's figures from local inputs only

        Fees come from the plan's percentages when the loan carries a plan,
        otherwise from the stored fee breakdown. A loan that is not yet
        disbursed is treated as booked on `as_of`.

        Args:
            loan: Loan to estimate
            as_of: Reference date (defaults to today)

        Returns:
            CalculationResult with source "preview"

        Raises:
            FrozenLoanError: If the loan's figures are frozen
        """
        state = loan.calculation_state()
        if isinstance(state, FrozenLoan):
            raise FrozenLoanError(f"Loan {state.loan_id} is frozen; its figures come from the processed snapshot")

        as_of = parse_date(as_of) or date.today()
        principal = state.principal

        if loan.plan and loan.plan.fees:
            plan_fees = compute_plan_fees(principal, loan.plan, self.gst_rate)
            fees_section, totals = plan_fees.fees, plan_fees.totals
            processing, post_service = resolve_fees(
                CalculationResult(loan_id=loan.id, principal=principal, fees=fees_section, totals=totals),
                (), self.gst_rate
            )
        else:
            processing, post_service = resolve_fees(None, state.fees_breakdown, self.gst_rate)
            fees_section = _fees_section(processing, post_service)
            totals = _totals(processing, post_service)

        interest = self._preview_interest(loan, as_of)
        schedule = build_emi_schedule(
            state.emi_schedule, principal, as_of, loan.status == LoanStatus.CLEARED, self.gst_rate
        )
        penalty = self._local_penalty(loan, principal, schedule, as_of)
        disbursal_preview = local_disbursal_amount(principal, processing)

        logger.debug("Preview for loan %s as of %s", loan.id, as_of)

        return CalculationResult(
            loan_id=loan.id,
            principal=principal,
            interest=interest,
            penalty=penalty,
            fees=fees_section,
            totals=totals,
            disbursal=DisbursalSection(amount=None, source=SOURCE_PREVIEW, preview_amount=disbursal_preview),
            schedule_raw=state.emi_schedule,
            schedule=schedule,
            total_repayable=total_repayable(
                schedule, principal, post_service, interest.total_interest_full_tenure, penalty.total
            ),
            pre_close=calculate_pre_closure(
                principal, interest.interest_till_today, self.pre_close_fee_rate, self.gst_rate
            ),
            source=SOURCE_PREVIEW,
            as_of=as_of
        )

    def assemble(self, loan: Loan, remote: CalculationResult, as_of: Optional[DateLike] = None) -> CalculationResult:
        """
        Complete a calculation service result for a loan

        Figures present on the remote result are kept as reported; local
        arithmetic only fills what is missing. Frozen loans take principal,
        interest, penalty and fees from the snapshot.

        Args:
            loan: Loan the result belongs to
            remote: Result fetched from the calculation service
            as_of: Reference date (defaults to the result's date, then today)

        Returns:
            New CalculationResult; the remote one is left untouched
        """
        as_of = parse_date(as_of) or remote.as_of or date.today()
        settled = loan.status == LoanStatus.CLEARED
        schedule_raw = remote.schedule_raw or tuple(loan.emi_schedule_raw)

        state = loan.calculation_state()
        if isinstance(state, FrozenLoan):
            snapshot = state.snapshot
            principal = snapshot.principal
            processing = self._snapshot_fee(FeeCategory.PROCESSING, snapshot.processing_fee)
            post_service = self._snapshot_fee(FeeCategory.POST_SERVICE, snapshot.post_service_fee)
            fees_section = _fees_section(processing, post_service)
            totals = _totals(processing, post_service)
            interest = self._frozen_interest(loan, snapshot, remote)
            penalty = frozen_penalty(snapshot, as_of)
            # Frozen penalties live on the snapshot, not on the entries
            schedule = build_emi_schedule(schedule_raw, principal, as_of, True, self.gst_rate)
        else:
            principal = remote.principal if remote.principal is not None else state.principal
            processing, post_service = resolve_fees(remote, state.fees_breakdown, self.gst_rate)
            fees_section = remote.fees if remote.fees.all_lines else _fees_section(processing, post_service)
            totals = remote.totals or _totals(processing, post_service)
            interest = self._remote_interest(loan, remote, principal, as_of)
            schedule = build_emi_schedule(schedule_raw, principal, as_of, settled, self.gst_rate)
            penalty = remote.penalty or self._local_penalty(loan, principal, schedule, as_of)

        decision = resolve_disbursal_amount(loan, remote.disbursal.amount)

        repayable = remote.total_repayable
        if repayable is None and interest is not None:
            repayable = total_repayable(
                schedule, principal, post_service, interest.total_interest_full_tenure, penalty.total
            )

        pre_close = None
        if interest is not None:
            pre_close = calculate_pre_closure(
                principal, interest.interest_till_today, self.pre_close_fee_rate, self.gst_rate
            )

        return remote.with_updates(
            principal=principal,
            interest=interest,
            penalty=penalty,
            fees=fees_section,
            totals=totals,
            disbursal=DisbursalSection(amount=decision.amount, source=decision.source.value),
            schedule_raw=schedule_raw,
            schedule=schedule,
            total_repayable=repayable,
            pre_close=pre_close,
            as_of=as_of
        )

    def extension_quote(
        self,
        loan: Loan,
        as_of: Optional[DateLike] = None,
        emi_index: Optional[int] = None,
        remote: Optional[CalculationResult] = None
    ) -> ExtensionQuote:
        """Eligibility and, for eligible loans, new dates and amounts payable"""
        as_of = parse_date(as_of) or date.today()
        eligibility = check_extension_eligibility(
            loan, as_of, emi_index,
            max_extensions=self.config.max_extensions,
            window_before=self.config.extension_window_before_days,
            window_after=self.config.extension_window_after_days
        )
        if not eligibility.eligible:
            return ExtensionQuote(eligibility=eligibility)

        return ExtensionQuote(
            eligibility=eligibility,
            dates=calculate_new_due_dates(loan, loan.salary_day, self.config.extension_fixed_days),
            fees=calculate_extension_fees(loan, as_of, remote, self.extension_fee_rate, self.gst_rate),
            outstanding_balance=calculate_outstanding_balance(loan, remote, self.gst_rate)
        )

    def _snapshot_fee(self, category: FeeCategory, base: Decimal) -> ResolvedFee:
        return ResolvedFee(category, base, round2(base * self.gst_rate), FeeSource.SNAPSHOT)

    def _preview_interest(self, loan: Loan, as_of: date) -> InterestBreakdown:
        start = loan.disbursed_date or as_of
        emi_dates = [entry.due_date for entry in loan.emi_schedule_raw]
        due = loan.due_date

        if not emi_dates and due is None:
            plan = loan.plan or LoanPlan(repayment_days=self.config.default_repayment_days)
            days = calculate_interest_days(plan, loan.salary_day, start, self.config.default_repayment_days)
            due = days.repayment_date or shift_days(start, days.days - 1)

        breakdown = interest_breakdown(
            loan.principal, loan.effective_rate_per_day, start, as_of,
            due_date=due, emi_due_dates=emi_dates or None
        )
        if loan.disbursed_date is None:
            # Nothing accrues before disbursal
            return InterestBreakdown(
                rate_per_day=breakdown.rate_per_day,
                exhausted_days=0,
                total_interest_full_tenure=breakdown.total_interest_full_tenure,
                interest_till_today=ZERO
            )
        return breakdown

    def _remote_interest(self, loan: Loan, remote: CalculationResult, principal: Decimal,
                         as_of: date) -> Optional[InterestBreakdown]:
        reported = remote.interest
        if reported is not None and not _is_legacy_interest(reported):
            return reported

        remote_total = reported.total_interest_full_tenure if reported is not None else None
        emi_dates = [entry.due_date for entry in remote.schedule_raw or loan.emi_schedule_raw]
        if remote_total is None and loan.disbursed_date is not None and not emi_dates and loan.due_date is None:
            logger.warning("Loan %s has no due date; interest left as reported", loan.id)
            return reported

        return interest_breakdown(
            principal, loan.effective_rate_per_day, loan.disbursed_date, as_of,
            due_date=loan.due_date, emi_due_dates=emi_dates or None, remote_total=remote_total
        )

    def _frozen_interest(self, loan: Loan, snapshot: ProcessedSnapshot, remote: CalculationResult) -> InterestBreakdown:
        reported = remote.interest
        if reported is not None and not _is_legacy_interest(reported):
            till_today = reported.interest_till_today
            rate = reported.rate_per_day
            days = reported.exhausted_days
        else:
            till_today = snapshot.interest
            rate = loan.effective_rate_per_day
            days = 0
        return InterestBreakdown(
            rate_per_day=rate,
            exhausted_days=days,
            total_interest_full_tenure=snapshot.interest,
            interest_till_today=till_today
        )

    def _local_penalty(self, loan: Loan, principal: Decimal, schedule, as_of: date) -> PenaltyBreakdown:
        if schedule:
            return schedule_penalty(schedule)
        if loan.disbursed_date is None or loan.status == LoanStatus.CLEARED:
            return PenaltyBreakdown.zero()
        return penalty_as_of(principal, loan.first_due_date, as_of, self.gst_rate)


def _is_legacy_interest(interest: InterestBreakdown) -> bool:
    """Legacy payloads report only the tenure total"""
    return interest.rate_per_day == ZERO and interest.exhausted_days == 0 and interest.interest_till_today == ZERO


def _fees_section(processing: ResolvedFee, post_service: ResolvedFee) -> FeesSection:
    deduct = (processing.to_line(PROCESSING_FEE_NAME),) if processing.base != ZERO else ()
    add = (post_service.to_line(POST_SERVICE_FEE_NAME),) if post_service.base != ZERO else ()
    return FeesSection(deduct_from_disbursal=deduct, add_to_total=add)


def _totals(processing: ResolvedFee, post_service: ResolvedFee) -> Totals:
    return Totals(
        disbursal_fee=processing.base,
        disbursal_fee_gst=processing.gst,
        repayable_fee=post_service.base,
        repayable_fee_gst=post_service.gst
    )

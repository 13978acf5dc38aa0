"""
Calculation Result Module

The derived CalculationResult structure, parsing of remote engine payloads
and JSON-ready serialization. Amounts missing from a remote payload stay
None; they are never defaulted to zero, since a silent zero cannot be told
apart from a genuinely zero fee.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from .dates import parse_date
from .interest import InterestBreakdown
from .loans import FeeLine, RawEmiEntry, _pick
from .money import ZERO, optional_decimal, to_decimal
from .penalty import PenaltyBreakdown


SOURCE_REMOTE = "remote"
SOURCE_PREVIEW = "preview"

SUPPORTED_FEE_BREAKDOWN_VERSIONS = (1,)


def _str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class FeeAmount:
    """Base fee and its GST"""
    base: Decimal
    gst: Decimal

    @property
    def total(self) -> Decimal:
        return self.base + self.gst


@dataclass(frozen=True)
class FeeBreakdown:
    """Versioned fee contract reported by the calculation service"""
    version: int
    processing_fee: FeeAmount
    post_service_fee: FeeAmount

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["FeeBreakdown"]:
        """Parse the contract; unknown versions are ignored, not guessed at"""
        version = int(_pick(data, "version", default=0))
        if version not in SUPPORTED_FEE_BREAKDOWN_VERSIONS:
            return None

        def amount(key_camel, key_snake):
            item = _pick(data, key_camel, key_snake) or {}
            return FeeAmount(
                base=to_decimal(_pick(item, "base", "baseAmount", "base_amount", default=0), key_snake),
                gst=to_decimal(_pick(item, "gst", "gstAmount", "gst_amount", default=0), key_snake)
            )

        return cls(
            version=version,
            processing_fee=amount("processingFee", "processing_fee"),
            post_service_fee=amount("postServiceFee", "post_service_fee")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "processingFee": {"base": str(self.processing_fee.base), "gst": str(self.processing_fee.gst)},
            "postServiceFee": {"base": str(self.post_service_fee.base), "gst": str(self.post_service_fee.gst)},
        }


@dataclass(frozen=True)
class Totals:
    """Aggregate fee totals"""
    disbursal_fee: Decimal = ZERO
    disbursal_fee_gst: Decimal = ZERO
    repayable_fee: Decimal = ZERO
    repayable_fee_gst: Decimal = ZERO

    @property
    def total_disbursal_deduction(self) -> Decimal:
        return self.disbursal_fee + self.disbursal_fee_gst

    @property
    def total_repayable_addition(self) -> Decimal:
        return self.repayable_fee + self.repayable_fee_gst

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Totals":
        return cls(
            disbursal_fee=to_decimal(_pick(data, "disbursalFee", "disbursal_fee", default=0), "disbursal_fee"),
            disbursal_fee_gst=to_decimal(_pick(data, "disbursalFeeGST", "disbursal_fee_gst", default=0), "disbursal_fee_gst"),
            repayable_fee=to_decimal(_pick(data, "repayableFee", "repayable_fee", default=0), "repayable_fee"),
            repayable_fee_gst=to_decimal(_pick(data, "repayableFeeGST", "repayable_fee_gst", default=0), "repayable_fee_gst")
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "disbursalFee": str(self.disbursal_fee),
            "disbursalFeeGST": str(self.disbursal_fee_gst),
            "repayableFee": str(self.repayable_fee),
            "repayableFeeGST": str(self.repayable_fee_gst),
        }


@dataclass(frozen=True)
class FeesSection:
    """Itemized fees split by where they apply"""
    deduct_from_disbursal: Tuple[FeeLine, ...] = ()
    add_to_total: Tuple[FeeLine, ...] = ()

    @property
    def all_lines(self) -> Tuple[FeeLine, ...]:
        return self.deduct_from_disbursal + self.add_to_total

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeesSection":
        return cls(
            deduct_from_disbursal=tuple(
                FeeLine.from_dict(line) for line in _pick(data, "deductFromDisbursal", "deduct_from_disbursal", default=[])
            ),
            add_to_total=tuple(
                FeeLine.from_dict(line) for line in _pick(data, "addToTotal", "add_to_total", default=[])
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deductFromDisbursal": [line.to_dict() for line in self.deduct_from_disbursal],
            "addToTotal": [line.to_dict() for line in self.add_to_total],
        }


@dataclass(frozen=True)
class DisbursalSection:
    """Disbursal figure and where it came from"""
    amount: Optional[Decimal]
    source: str = SOURCE_REMOTE
    preview_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class EmiScheduleEntry:
    """Schedule entry with its per-period penalty injected"""
    emi_number: int
    due_date: date
    base_emi_amount: Decimal
    penalty_base: Decimal
    penalty_gst: Decimal
    instalment_amount: Decimal
    status: str
    dpd: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emiNumber": self.emi_number,
            "dueDate": self.due_date.isoformat(),
            "baseEmiAmount": str(self.base_emi_amount),
            "penaltyBase": str(self.penalty_base),
            "penaltyGST": str(self.penalty_gst),
            "instalmentAmount": str(self.instalment_amount),
            "status": self.status,
            "dpd": self.dpd,
        }


@dataclass(frozen=True)
class PreClosure:
    """Payoff figure to settle the loan today"""
    principal: Decimal
    interest_till_today: Decimal
    fee: Decimal
    fee_gst: Decimal
    amount: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "principal": str(self.principal),
            "interestTillToday": str(self.interest_till_today),
            "preCloseFee": str(self.fee),
            "preCloseFeeGST": str(self.fee_gst),
            "preCloseAmount": str(self.amount),
        }


@dataclass(frozen=True)
class CalculationResult:
    """Derived money figures for one loan as of one date"""
    loan_id: str
    principal: Optional[Decimal]
    interest: Optional[InterestBreakdown] = None
    penalty: Optional[PenaltyBreakdown] = None
    fees: FeesSection = field(default_factory=FeesSection)
    totals: Optional[Totals] = None
    disbursal: DisbursalSection = field(default_factory=lambda: DisbursalSection(amount=None))
    schedule_raw: Tuple[RawEmiEntry, ...] = ()
    schedule: Tuple[EmiScheduleEntry, ...] = ()
    total_repayable: Optional[Decimal] = None
    pre_close: Optional[PreClosure] = None
    fee_breakdown: Optional[FeeBreakdown] = None
    source: str = SOURCE_REMOTE
    as_of: Optional[date] = None

    @property
    def is_preview(self) -> bool:
        return self.source == SOURCE_PREVIEW

    def with_updates(self, **changes) -> "CalculationResult":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], loan_id: Optional[str] = None) -> "CalculationResult":
        """
        Parse a remote engine payload

        Accepts camelCase or snake_case keys and an optional
        {"success": ..., "data": {...}} envelope.
        """
        if isinstance(data.get("data"), dict):
            data = data["data"]

        return cls(
            loan_id=str(_pick(data, "loanId", "loan_id", default=loan_id)),
            principal=optional_decimal(_pick(data, "principal"), "principal"),
            interest=_parse_interest(_pick(data, "interest")),
            penalty=_parse_penalty(_pick(data, "penalty")),
            fees=FeesSection.from_dict(_pick(data, "fees", default={})),
            totals=Totals.from_dict(data["totals"]) if data.get("totals") else None,
            disbursal=DisbursalSection(amount=_parse_amount(_pick(data, "disbursal"))),
            schedule_raw=_parse_schedule(_pick(data, "repayment", default={})),
            total_repayable=_parse_total(_pick(data, "total")),
            fee_breakdown=_parse_fee_breakdown(_pick(data, "feeBreakdown", "fee_breakdown")),
            source=SOURCE_REMOTE,
            as_of=parse_date(_pick(data, "asOf", "as_of", "calculation_date"))
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation; amounts are decimal strings"""
        interest = None
        if self.interest:
            interest = {
                "ratePerDay": str(self.interest.rate_per_day),
                "exhaustedDays": self.interest.exhausted_days,
                "totalInterestFullTenure": str(self.interest.total_interest_full_tenure),
                "interestTillToday": str(self.interest.interest_till_today),
            }
        penalty = None
        if self.penalty:
            penalty = {
                "dpd": self.penalty.dpd,
                "base": str(self.penalty.base),
                "gst": str(self.penalty.gst),
                "total": str(self.penalty.total),
            }
        return {
            "loanId": self.loan_id,
            "source": self.source,
            "asOf": self.as_of.isoformat() if self.as_of else None,
            "principal": _str(self.principal),
            "interest": interest,
            "penalty": penalty,
            "fees": self.fees.to_dict(),
            "totals": self.totals.to_dict() if self.totals else None,
            "disbursal": {
                "amount": _str(self.disbursal.amount),
                "source": self.disbursal.source,
                "previewAmount": _str(self.disbursal.preview_amount),
            },
            "repayment": {"schedule": [entry.to_dict() for entry in self.schedule]},
            "total": {"repayable": _str(self.total_repayable)},
            "preClose": self.pre_close.to_dict() if self.pre_close else None,
            "feeBreakdown": self.fee_breakdown.to_dict() if self.fee_breakdown else None,
        }


def _parse_amount(value) -> Optional[Decimal]:
    if isinstance(value, dict):
        value = _pick(value, "amount")
    return optional_decimal(value, "amount")


def _parse_total(value) -> Optional[Decimal]:
    if isinstance(value, dict):
        value = _pick(value, "repayable")
    return optional_decimal(value, "total_repayable")


def _parse_interest(value) -> Optional[InterestBreakdown]:
    if value is None:
        return None
    if not isinstance(value, dict):
        # Legacy payloads carry only the tenure interest as a number
        return InterestBreakdown(
            rate_per_day=ZERO,
            exhausted_days=0,
            total_interest_full_tenure=to_decimal(value, "interest"),
            interest_till_today=ZERO
        )
    return InterestBreakdown(
        rate_per_day=to_decimal(_pick(value, "ratePerDay", "rate_per_day", default=0), "rate_per_day"),
        exhausted_days=int(_pick(value, "exhaustedDays", "exhausted_days", default=0)),
        total_interest_full_tenure=to_decimal(
            _pick(value, "totalInterestFullTenure", "total_interest_full_tenure", "amount", default=0),
            "total_interest_full_tenure"
        ),
        interest_till_today=to_decimal(
            _pick(value, "interestTillToday", "interest_till_today", default=0), "interest_till_today"
        )
    )


def _parse_penalty(value) -> Optional[PenaltyBreakdown]:
    if not isinstance(value, dict):
        return None
    base = to_decimal(_pick(value, "base", "amount", default=0), "penalty_base")
    gst = to_decimal(_pick(value, "gst", default=0), "penalty_gst")
    return PenaltyBreakdown(
        dpd=int(_pick(value, "dpd", default=0)),
        base=base,
        gst=gst,
        total=to_decimal(_pick(value, "total", default=base + gst), "penalty_total")
    )


def _parse_schedule(value) -> Tuple[RawEmiEntry, ...]:
    if isinstance(value, list):
        entries = value
    else:
        entries = _pick(value, "schedule", default=[])
    return tuple(sorted(
        (RawEmiEntry.from_dict(entry) for entry in entries),
        key=lambda entry: (entry.due_date, entry.emi_number)
    ))


def _parse_fee_breakdown(value) -> Optional[FeeBreakdown]:
    if not isinstance(value, dict):
        return None
    return FeeBreakdown.from_dict(value)

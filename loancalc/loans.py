"""
Loan Module

Loan record, plan terms and processed snapshot as consumed by the calculation
subsystem. Loans are read, never persisted, here; the one mutation allowed is
capturing the processed snapshot once, after which it is immutable.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import json

from .dates import parse_date
from .errors import InvalidInputError, SnapshotFrozenError
from .money import ZERO, to_decimal, optional_decimal, require_non_negative


class LoanStatus(Enum):
    """Loan application lifecycle states"""
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    FOLLOW_UP = "follow_up"
    APPROVED = "approved"
    READY_FOR_DISBURSEMENT = "ready_for_disbursement"
    DISBURSAL = "disbursal"
    REPEAT_DISBURSAL = "repeat_disbursal"
    READY_TO_REPEAT_DISBURSAL = "ready_to_repeat_disbursal"
    QA_VERIFICATION = "qa_verification"
    ACCOUNT_MANAGER = "account_manager"    # Disbursed, in servicing/recovery
    CLEARED = "cleared"                    # Fully repaid
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Union["LoanStatus", str]) -> "LoanStatus":
        """Accept an enum member or its wire string (case-insensitive)"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            normalized = _STATUS_ALIASES.get(normalized, normalized)
            for member in cls:
                if member.value == normalized:
                    return member
        raise InvalidInputError(f"Unknown loan status: {value!r}")


_STATUS_ALIASES = {
    "disbursement_ready": "ready_for_disbursement",
    "ready_to_disburse": "ready_for_disbursement",
    "qa": "qa_verification",
}

# Disbursed states whose figures are frozen once the snapshot is captured
FROZEN_STATUSES = frozenset({LoanStatus.ACCOUNT_MANAGER, LoanStatus.CLEARED})

# A new disbursal cycle on an existing loan relationship
REPEAT_STATUSES = frozenset({LoanStatus.REPEAT_DISBURSAL, LoanStatus.READY_TO_REPEAT_DISBURSAL})

DEDUCT_FROM_DISBURSAL = "deduct_from_disbursal"
ADD_TO_TOTAL = "add_to_total"


def _pick(data: Dict[str, Any], *keys, default=None):
    """First present, non-None value among several key spellings"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _json_list(value) -> list:
    """Stored JSON columns arrive either decoded or as strings"""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise InvalidInputError("Malformed JSON list")
    if not isinstance(value, list):
        return [value]
    return value


@dataclass(frozen=True)
class FeeLine:
    """One itemized fee: base amount and its GST reported separately"""
    name: str
    base_amount: Decimal
    gst_amount: Optional[Decimal] = None
    application_method: Optional[str] = None
    fee_percent: Optional[Decimal] = None

    @property
    def total_with_gst(self) -> Decimal:
        return self.base_amount + (self.gst_amount or ZERO)

    def matches(self, keyword: str) -> bool:
        """Case-insensitive substring match on the fee name"""
        return keyword.lower() in (self.name or "").lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeLine":
        # The base amount only: total_with_gst would count GST twice downstream
        base = _pick(data, "fee_amount", "feeAmount", "base_amount", "baseAmount", "amount", default=0)
        return cls(
            name=str(_pick(data, "fee_name", "feeName", "name", default="Unknown Fee")),
            base_amount=to_decimal(base, "fee_amount"),
            gst_amount=optional_decimal(_pick(data, "gst_amount", "gstAmount", "gst"), "gst_amount"),
            application_method=_pick(data, "application_method", "applicationMethod"),
            fee_percent=optional_decimal(_pick(data, "fee_percent", "feePercent"), "fee_percent")
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "baseAmount": str(self.base_amount),
            "gstAmount": str(self.gst_amount) if self.gst_amount is not None else None,
        }
        if self.application_method:
            data["applicationMethod"] = self.application_method
        if self.fee_percent is not None:
            data["feePercent"] = str(self.fee_percent)
        return data


@dataclass(frozen=True)
class PlanFee:
    """Fee configured on a loan plan as a percentage of principal"""
    name: str
    fee_percent: Decimal
    application_method: str

    def __post_init__(self):
        if self.application_method not in (DEDUCT_FROM_DISBURSAL, ADD_TO_TOTAL):
            raise InvalidInputError(f"Unknown fee application method: {self.application_method!r}")
        if self.fee_percent < ZERO or self.fee_percent > Decimal('100'):
            raise InvalidInputError(f"Fee percent must be between 0 and 100: {self.fee_percent}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanFee":
        return cls(
            name=str(_pick(data, "fee_name", "name", default="Unknown Fee")),
            fee_percent=to_decimal(_pick(data, "fee_percent", "percent", default=0), "fee_percent"),
            application_method=_pick(data, "application_method", default=DEDUCT_FROM_DISBURSAL)
        )


@dataclass
class LoanPlan:
    """Plan terms snapshotted onto a loan at application time"""
    plan_type: str = "single"               # single or multi_emi
    repayment_days: int = 15
    emi_count: int = 1
    emi_frequency: Optional[str] = None     # monthly, weekly, ...
    calculate_by_salary_date: bool = False
    rate_per_day: Optional[Decimal] = None
    fees: List[PlanFee] = field(default_factory=list)

    def __post_init__(self):
        if self.plan_type not in ("single", "multi_emi"):
            raise InvalidInputError(f"Unknown plan type: {self.plan_type!r}")
        if self.emi_count < 1:
            raise InvalidInputError("EMI count must be at least 1")
        if self.rate_per_day is not None:
            self.rate_per_day = require_non_negative(to_decimal(self.rate_per_day, "rate_per_day"), "rate_per_day")

    @property
    def is_multi_emi(self) -> bool:
        return self.plan_type == "multi_emi"

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], str]) -> "LoanPlan":
        if isinstance(data, str):
            data = json.loads(data)
        return cls(
            plan_type=_pick(data, "plan_type", default="single"),
            repayment_days=int(_pick(data, "repayment_days", "total_duration_days", default=15)),
            emi_count=int(_pick(data, "emi_count", default=1)),
            emi_frequency=_pick(data, "emi_frequency"),
            calculate_by_salary_date=bool(_pick(data, "calculate_by_salary_date", default=False)),
            rate_per_day=optional_decimal(_pick(data, "interest_percent_per_day"), "interest_percent_per_day"),
            fees=[PlanFee.from_dict(fee) for fee in _json_list(_pick(data, "fees"))]
        )


@dataclass(frozen=True)
class ProcessedSnapshot:
    """Figures frozen when the loan was processed; never recomputed"""
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    gst: Decimal                            # GST on the frozen penalty
    processing_fee: Decimal
    post_service_fee: Decimal
    due_date: Optional[date] = None

    @property
    def penalty_total(self) -> Decimal:
        return self.penalty + self.gst

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessedSnapshot":
        return cls(
            principal=to_decimal(_pick(data, "principal", "processed_amount", default=0), "principal"),
            interest=to_decimal(_pick(data, "interest", "processed_interest", default=0), "interest"),
            penalty=to_decimal(_pick(data, "penalty", "processed_penalty", default=0), "penalty"),
            gst=to_decimal(_pick(data, "gst", "processed_gst", default=0), "gst"),
            processing_fee=to_decimal(_pick(data, "pFee", "p_fee", "processing_fee", "processed_p_fee", default=0), "processing_fee"),
            post_service_fee=to_decimal(_pick(data, "postServiceFee", "post_service_fee", "processed_post_service_fee", default=0), "post_service_fee"),
            due_date=_first_due_date(_pick(data, "dueDate", "due_date", "processed_due_date"))
        )


def _first_due_date(value) -> Optional[date]:
    """processed_due_date holds a date or a JSON list of EMI dates"""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().startswith("["):
        dates = _json_list(value)
        return parse_date(dates[0]) if dates else None
    if isinstance(value, list):
        return parse_date(value[0]) if value else None
    return parse_date(value)


@dataclass(frozen=True)
class RawEmiEntry:
    """Schedule entry as provided by the authoritative engine"""
    emi_number: int
    due_date: date
    emi_amount: Decimal
    status: str = "pending"

    @property
    def is_paid(self) -> bool:
        return (self.status or "").lower() == "paid"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawEmiEntry":
        due = parse_date(_pick(data, "dueDate", "due_date"))
        if due is None:
            raise InvalidInputError("EMI entry is missing its due date")
        return cls(
            emi_number=int(_pick(data, "emiNumber", "emi_number", "instalment_no", default=0)),
            due_date=due,
            emi_amount=require_non_negative(
                to_decimal(_pick(data, "emiAmount", "emi_amount", "baseEmiAmount", "amount", default=0), "emi_amount"),
                "emi_amount"
            ),
            status=str(_pick(data, "status", default="pending"))
        )


@dataclass(frozen=True)
class ActiveLoan:
    """Loan whose figures are recomputed from its inputs"""
    loan_id: str
    principal: Decimal
    rate_per_day: Decimal
    disbursed_date: Optional[date]
    due_date: Optional[date]
    fees_breakdown: tuple
    emi_schedule: tuple


@dataclass(frozen=True)
class FrozenLoan:
    """Loan whose figures come only from its processed snapshot"""
    loan_id: str
    snapshot: ProcessedSnapshot
    stored_disbursal_amount: Optional[Decimal]


@dataclass
class Loan:
    """Loan record handed to the calculation subsystem"""
    id: str
    principal: Decimal
    status: LoanStatus
    disbursed_date: Optional[date] = None
    due_date: Optional[date] = None
    rate_per_day: Decimal = ZERO            # Fraction per day, 0.001 = 0.1%/day
    fees_breakdown: List[FeeLine] = field(default_factory=list)
    stored_disbursal_amount: Optional[Decimal] = None
    processed_snapshot: Optional[ProcessedSnapshot] = None
    emi_schedule_raw: List[RawEmiEntry] = field(default_factory=list)

    # Repeat-disbursal sub-state while the status string is post-disbursal
    in_repeat_cycle: bool = False
    plan: Optional[LoanPlan] = None
    salary_day: Optional[int] = None
    extension_count: int = 0
    extension_pending: bool = False

    def __post_init__(self):
        self.id = str(self.id)
        self.status = LoanStatus.parse(self.status)
        self.principal = require_non_negative(to_decimal(self.principal, "principal"), "principal")
        self.rate_per_day = require_non_negative(to_decimal(self.rate_per_day, "rate_per_day"), "rate_per_day")
        self.disbursed_date = parse_date(self.disbursed_date)
        self.due_date = parse_date(self.due_date)
        if self.stored_disbursal_amount is not None:
            self.stored_disbursal_amount = to_decimal(self.stored_disbursal_amount, "stored_disbursal_amount")
        if self.salary_day is not None:
            self.salary_day = int(self.salary_day)
        if self.salary_day is not None and not 1 <= self.salary_day <= 31:
            raise InvalidInputError(f"Salary day must be between 1 and 31, got {self.salary_day!r}")
        self.emi_schedule_raw = sorted(self.emi_schedule_raw, key=lambda entry: (entry.due_date, entry.emi_number))

    def __setattr__(self, name, value):
        if name == "processed_snapshot" and self.__dict__.get("processed_snapshot") is not None:
            raise SnapshotFrozenError(f"Processed snapshot of loan {self.__dict__.get('id')} is immutable")
        super().__setattr__(name, value)

    @property
    def is_repeat_disbursal(self) -> bool:
        """Check if loan is in a repeat-disbursal cycle"""
        return self.status in REPEAT_STATUSES or self.in_repeat_cycle

    @property
    def is_post_disbursal(self) -> bool:
        """Disbursed and in servicing, not renewing"""
        return self.status in FROZEN_STATUSES and not self.is_repeat_disbursal

    @property
    def is_frozen(self) -> bool:
        """Check if figures must come from the processed snapshot"""
        return self.is_post_disbursal and self.processed_snapshot is not None

    @property
    def emi_count(self) -> int:
        if self.emi_schedule_raw:
            return len(self.emi_schedule_raw)
        if self.plan and self.plan.is_multi_emi:
            return self.plan.emi_count
        return 1

    @property
    def is_multi_emi(self) -> bool:
        return self.emi_count > 1

    @property
    def effective_rate_per_day(self) -> Decimal:
        """Loan rate, or the plan's when the loan carries none"""
        if self.rate_per_day == ZERO and self.plan and self.plan.rate_per_day is not None:
            return self.plan.rate_per_day
        return self.rate_per_day

    @property
    def first_due_date(self) -> Optional[date]:
        if self.emi_schedule_raw:
            return self.emi_schedule_raw[0].due_date
        if self.due_date:
            return self.due_date
        if self.processed_snapshot:
            return self.processed_snapshot.due_date
        return None

    @property
    def final_due_date(self) -> Optional[date]:
        if self.emi_schedule_raw:
            return self.emi_schedule_raw[-1].due_date
        return self.due_date

    def freeze(self, snapshot: ProcessedSnapshot) -> None:
        """
        Capture the processed snapshot

        Raises:
            SnapshotFrozenError: If a snapshot was already captured
            InvalidInputError: If the loan is not in a terminal non-repeat state
        """
        if self.processed_snapshot is not None:
            raise SnapshotFrozenError(f"Processed snapshot of loan {self.id} is immutable")
        if not self.is_post_disbursal:
            raise InvalidInputError(
                f"Loan {self.id} in status {self.status.value} cannot be frozen"
            )
        self.processed_snapshot = snapshot

    def calculation_state(self) -> Union[ActiveLoan, FrozenLoan]:
        """Tagged view: frozen loans expose only their snapshot"""
        if self.is_frozen:
            return FrozenLoan(
                loan_id=self.id,
                snapshot=self.processed_snapshot,
                stored_disbursal_amount=self.stored_disbursal_amount
            )
        return ActiveLoan(
            loan_id=self.id,
            principal=self.principal,
            rate_per_day=self.effective_rate_per_day,
            disbursed_date=self.disbursed_date,
            due_date=self.due_date,
            fees_breakdown=tuple(self.fees_breakdown),
            emi_schedule=tuple(self.emi_schedule_raw)
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Loan":
        """Build a loan from an API/database row (snake_case or camelCase)"""
        snapshot_data = _pick(data, "processed_snapshot", "processedSnapshot")
        if snapshot_data is None and _pick(data, "processed_amount") is not None:
            snapshot_data = data
        plan_data = _pick(data, "plan", "plan_snapshot")

        return cls(
            id=_pick(data, "id", "loan_id", "loanId"),
            principal=_pick(data, "principal", "loan_amount", "loanAmount", default=0),
            status=_pick(data, "status"),
            disbursed_date=_pick(data, "disbursed_date", "disbursedDate", "disbursed_at", "processed_at"),
            due_date=_first_due_date(_pick(data, "due_date", "dueDate", "processed_due_date")),
            rate_per_day=_pick(data, "rate_per_day", "ratePerDay", "interest_percent_per_day", default=0),
            fees_breakdown=[FeeLine.from_dict(fee) for fee in _json_list(_pick(data, "fees_breakdown", "feesBreakdown"))],
            stored_disbursal_amount=_pick(data, "stored_disbursal_amount", "storedDisbursalAmount", "disbursal_amount"),
            processed_snapshot=ProcessedSnapshot.from_dict(snapshot_data) if snapshot_data else None,
            emi_schedule_raw=[RawEmiEntry.from_dict(entry) for entry in _json_list(_pick(data, "emi_schedule", "emiSchedule", "emi_schedule_raw"))],
            in_repeat_cycle=bool(_pick(data, "in_repeat_cycle", "inRepeatCycle", default=False)),
            plan=LoanPlan.from_dict(plan_data) if plan_data else None,
            salary_day=_pick(data, "salary_day", "salary_date"),
            extension_count=int(_pick(data, "extension_count", default=0)),
            extension_pending=_pick(data, "extension_status") == "pending"
        )

"""
Calculation Service Module

Facade over the calculation service client, the per-loan cache and the local
calculator. Remote failures become explicit `unavailable` outcomes; they are
never replaced by locally computed or zero figures.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .cache import CalculationCache, EntryState
from .calculator import LoanCalculator
from .client import CalculationServiceClient
from .config import LoanCalcConfig, get_config
from .dates import DateLike
from .disbursal import DisbursalDecision, resolve_disbursal_amount, trusts_stored_amount
from .errors import InvalidInputError, LoanNotFoundError, RemoteUnavailableError
from .extensions import ExtensionQuote
from .loans import Loan
from .logging_config import get_logger, log_action
from .money import HUNDRED, ZERO, to_decimal
from .results import CalculationResult

logger = get_logger("loancalc.service")


class CalculationStatus(Enum):
    READY = "ready"
    PENDING = "pending"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CalculationOutcome:
    """Result of asking for a loan's calculation"""
    loan_id: str
    status: CalculationStatus
    result: Optional[CalculationResult] = None
    preview: Optional[CalculationResult] = None
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status is CalculationStatus.READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loanId": self.loan_id,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "preview": self.preview.to_dict() if self.preview else None,
            "error": self.error,
        }


def _failure_outcome(loan_id: str, error: Exception) -> CalculationOutcome:
    if isinstance(error, LoanNotFoundError):
        return CalculationOutcome(loan_id, CalculationStatus.NOT_FOUND, error=str(error))
    return CalculationOutcome(loan_id, CalculationStatus.UNAVAILABLE, error=str(error))


class CalculationService:
    """Cache-backed access to loan calculations"""

    def __init__(
        self,
        client: CalculationServiceClient,
        cache: Optional[CalculationCache] = None,
        calculator: Optional[LoanCalculator] = None,
        config: Optional[LoanCalcConfig] = None
    ):
        self.client = client
        self.config = config or get_config()
        self.cache = cache or CalculationCache()
        self.calculator = calculator or LoanCalculator(self.config)

    def _fetcher(self, loan_id: str):
        return lambda: self.client.get_loan_calculation(loan_id)

    def _complete(self, result: CalculationResult, loan: Optional[Loan],
                  as_of: Optional[DateLike]) -> CalculationResult:
        if loan is None:
            return result
        return self.calculator.assemble(loan, result, as_of)

    async def get_calculation(
        self,
        loan_id: str,
        loan: Optional[Loan] = None,
        as_of: Optional[DateLike] = None
    ) -> CalculationOutcome:
        """
        Fetch (or reuse) a loan's calculation and wait for it

        When the loan record is supplied the remote result is completed with
        fee resolution, the disbursal decision, schedule penalties and the
        pre-closure figure.

        Returns:
            CalculationOutcome: ready, unavailable or not_found
        """
        loan_id = str(loan_id)
        try:
            result = await self.cache.get_or_fetch(loan_id, self._fetcher(loan_id))
        except (LoanNotFoundError, RemoteUnavailableError) as e:
            return _failure_outcome(loan_id, e)

        return CalculationOutcome(loan_id, CalculationStatus.READY, result=self._complete(result, loan, as_of))

    async def poll_calculation(
        self,
        loan_id: str,
        loan: Optional[Loan] = None,
        as_of: Optional[DateLike] = None
    ) -> CalculationOutcome:
        """
        Non-blocking read: a ready result, or pending while a fetch runs

        A pending outcome carries a local preview for non-frozen loans when
        previews are enabled. A recorded failure is reported as is; no new
        fetch is started until the loan is invalidated or fetched again.
        """
        loan_id = str(loan_id)
        result = self.cache.get(loan_id)
        if result is not None:
            return CalculationOutcome(loan_id, CalculationStatus.READY, result=self._complete(result, loan, as_of))

        entry = self.cache.peek(loan_id)
        if entry is not None and entry.state is EntryState.UNAVAILABLE and not self.cache.is_in_flight(loan_id):
            return _failure_outcome(loan_id, entry.error)

        self.cache.start_fetch(loan_id, self._fetcher(loan_id))
        return CalculationOutcome(loan_id, CalculationStatus.PENDING, preview=self._preview_or_none(loan, as_of))

    def _preview_or_none(self, loan: Optional[Loan], as_of: Optional[DateLike]) -> Optional[CalculationResult]:
        if loan is None or loan.is_frozen or not self.config.enable_local_preview:
            return None
        try:
            return self.calculator.preview(loan, as_of)
        except InvalidInputError as e:
            logger.warning(f"No preview for loan {loan.id}: {e}")
            return None

    def invalidate_calculation(self, loan_id: str) -> bool:
        """Drop the cached calculation so the next read refetches"""
        loan_id = str(loan_id)
        dropped = self.cache.invalidate(loan_id)
        log_action(logger, "info", "Calculation invalidated",
                   loan_id=loan_id, action="invalidate_calculation",
                   extra={"dropped": dropped})
        return dropped

    async def resolve_disbursal_amount(self, loan: Loan) -> DisbursalDecision:
        """
        Disbursal amount for a loan, waiting on the calculation service when needed

        Loans already in servicing use their stored amount. Repeat
        disbursals always go to the calculation service.
        """
        if trusts_stored_amount(loan):
            return resolve_disbursal_amount(loan)

        try:
            result = await self.cache.get_or_fetch(loan.id, self._fetcher(loan.id))
        except (LoanNotFoundError, RemoteUnavailableError) as e:
            logger.warning(f"Disbursal amount unavailable for loan {loan.id}: {e}")
            return resolve_disbursal_amount(loan)

        return resolve_disbursal_amount(loan, result.disbursal.amount)

    async def peek_disbursal_amount(self, loan: Loan) -> DisbursalDecision:
        """Non-blocking disbursal decision; starts a fetch if none is running"""
        if trusts_stored_amount(loan):
            return resolve_disbursal_amount(loan)

        result = self.cache.get(loan.id)
        if result is not None:
            return resolve_disbursal_amount(loan, result.disbursal.amount)

        entry = self.cache.peek(loan.id)
        if entry is not None and entry.state is EntryState.UNAVAILABLE and not self.cache.is_in_flight(loan.id):
            return resolve_disbursal_amount(loan)

        self.cache.start_fetch(loan.id, self._fetcher(loan.id))
        preview = self._preview_or_none(loan, None)
        return resolve_disbursal_amount(
            loan,
            in_flight=True,
            preview_amount=preview.disbursal.preview_amount if preview else None
        )

    def preview(self, loan: Loan, as_of: Optional[DateLike] = None) -> CalculationResult:
        """Local estimate; raises FrozenLoanError for frozen loans"""
        return self.calculator.preview(loan, as_of)

    def extension_quote(self, loan: Loan, as_of: Optional[DateLike] = None,
                        emi_index: Optional[int] = None) -> ExtensionQuote:
        return self.calculator.extension_quote(loan, as_of, emi_index, self.cache.get(loan.id))

    async def update_loan_amount(self, loan_id: str, new_principal) -> Dict[str, Any]:
        """
        Change a loan's principal and invalidate its calculation

        Raises:
            InvalidInputError: If the principal is not positive
            LoanNotFoundError / RemoteUnavailableError: From the service
        """
        loan_id = str(loan_id)
        principal = to_decimal(new_principal, "principal")
        if principal <= ZERO:
            raise InvalidInputError("Principal must be greater than zero")

        ack = await self.client.update_loan_amount(loan_id, principal)
        self.cache.invalidate(loan_id)
        log_action(logger, "info", "Loan amount updated",
                   loan_id=loan_id, action="update_loan_amount",
                   extra={"new_principal": str(principal)})
        return ack

    async def update_calculation_inputs(
        self,
        loan_id: str,
        processing_fee_percent=None,
        interest_percent_per_day=None
    ) -> Dict[str, Any]:
        """
        Change processing fee percent and/or daily interest percent

        Raises:
            InvalidInputError: If nothing is supplied or a value is out of range
        """
        loan_id = str(loan_id)
        if processing_fee_percent is None and interest_percent_per_day is None:
            raise InvalidInputError("At least one calculation input must be supplied")

        fee_percent = None
        if processing_fee_percent is not None:
            fee_percent = to_decimal(processing_fee_percent, "processing_fee_percent")
            if fee_percent < ZERO or fee_percent > HUNDRED:
                raise InvalidInputError("Processing fee percent must be between 0 and 100")

        interest_percent = None
        if interest_percent_per_day is not None:
            interest_percent = to_decimal(interest_percent_per_day, "interest_percent_per_day")
            if interest_percent < ZERO:
                raise InvalidInputError("Interest percent per day cannot be negative")

        ack = await self.client.update_loan_calculation_inputs(
            loan_id,
            processing_fee_percent=fee_percent,
            interest_percent_per_day=interest_percent
        )
        self.cache.invalidate(loan_id)
        log_action(logger, "info", "Calculation inputs updated",
                   loan_id=loan_id, action="update_calculation_inputs",
                   extra={
                       "processing_fee_percent": str(fee_percent) if fee_percent is not None else None,
                       "interest_percent_per_day": str(interest_percent) if interest_percent is not None else None,
                   })
        return ack

    def fees_reassigned(self, loan_id: str) -> None:
        """Fee configuration changed for a loan"""
        loan_id = str(loan_id)
        self.cache.invalidate(loan_id)
        log_action(logger, "info", "Fees reassigned", loan_id=loan_id, action="fees_reassigned")

    async def health_check(self) -> bool:
        return await self.client.health_check()

    async def close(self):
        await self.client.close()

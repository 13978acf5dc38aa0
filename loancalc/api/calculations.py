"""
Stateless calculation endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import get_calculation_service
from .schemas import (
    DisbursalRequest, ExtensionRequest, LoanCalculationRequest, PenaltyRequest, PreCloseRequest
)
from ..errors import FrozenLoanError, InvalidInputError
from ..interest import interest_till_date
from ..loans import Loan
from ..penalty import calculate_penalty, penalty_as_of
from ..schedule import calculate_pre_closure
from ..service import CalculationService


router = APIRouter()


def _loan(data) -> Loan:
    try:
        return Loan.from_dict(data)
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid loan: {e}")


@router.post("/preview")
async def preview_calculation(
    request: LoanCalculationRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Estimate a loan's figures from its own record"""
    loan = _loan(request.loan)
    try:
        return service.preview(loan, request.as_of).to_dict()
    except FrozenLoanError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/extension")
async def quote_extension(
    request: ExtensionRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Extension eligibility, new due dates and amounts payable"""
    loan = _loan(request.loan)
    try:
        return service.extension_quote(loan, request.as_of, request.emi_index).to_dict()
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/disbursal")
async def resolve_disbursal(
    request: DisbursalRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Disbursal amount and where it came from"""
    loan = _loan(request.loan)
    if request.wait:
        decision = await service.resolve_disbursal_amount(loan)
    else:
        decision = await service.peek_disbursal_amount(loan)

    return {
        "loan_id": loan.id,
        "amount": str(decision.amount) if decision.amount is not None else None,
        "source": decision.source.value,
        "reason": decision.reason,
        "preview_amount": str(decision.preview_amount) if decision.preview_amount is not None else None
    }


@router.post("/pre-close")
async def pre_close(
    request: PreCloseRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Pre-closure payoff from accrued interest, or from rate and dates"""
    calculator = service.calculator
    try:
        interest = request.interest_till_today
        if interest is None:
            if request.rate_per_day is None or request.disbursed_date is None or request.as_of is None:
                raise InvalidInputError(
                    "Provide interest_till_today, or rate_per_day with disbursed_date and as_of"
                )
            interest = interest_till_date(request.principal, request.rate_per_day,
                                          request.disbursed_date, request.as_of)

        result = calculate_pre_closure(request.principal, interest,
                                       calculator.pre_close_fee_rate, calculator.gst_rate)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()


@router.post("/penalty")
async def penalty(
    request: PenaltyRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Days-past-due penalty from a dpd count, or from due date and as-of date"""
    gst_rate = service.calculator.gst_rate
    try:
        if request.dpd is not None:
            result = calculate_penalty(request.principal, request.dpd, gst_rate)
        elif request.due_date is not None and request.as_of is not None:
            result = penalty_as_of(request.principal, request.due_date, request.as_of, gst_rate)
        else:
            raise InvalidInputError("Provide dpd, or due_date with as_of")
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "dpd": result.dpd,
        "base": str(result.base),
        "gst": str(result.gst),
        "total": str(result.total)
    }

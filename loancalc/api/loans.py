"""
Loan calculation endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, Response, status
from fastapi.responses import JSONResponse

from .dependencies import get_calculation_service
from .schemas import UpdateCalculationInputsRequest, UpdateLoanAmountRequest
from ..errors import InvalidInputError, LoanNotFoundError, RemoteUnavailableError
from ..service import CalculationService, CalculationStatus


router = APIRouter()


@router.get("/{loan_id}/calculation")
async def get_loan_calculation(
    loan_id: str,
    wait: bool = True,
    service: CalculationService = Depends(get_calculation_service)
):
    """Get a loan's calculation; with wait=false, 202 while it is being fetched"""
    if wait:
        outcome = await service.get_calculation(loan_id)
    else:
        outcome = await service.poll_calculation(loan_id)

    if outcome.status is CalculationStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Loan not found")
    if outcome.status is CalculationStatus.UNAVAILABLE:
        raise HTTPException(status_code=503, detail=outcome.error or "Calculation unavailable")
    if outcome.status is CalculationStatus.PENDING:
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=outcome.to_dict())

    return outcome.to_dict()


@router.delete("/{loan_id}/calculation", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_loan_calculation(
    loan_id: str,
    service: CalculationService = Depends(get_calculation_service)
):
    """Drop the cached calculation for a loan"""
    service.invalidate_calculation(loan_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{loan_id}/amount")
async def update_loan_amount(
    loan_id: str,
    request: UpdateLoanAmountRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Change a loan's principal"""
    try:
        ack = await service.update_loan_amount(loan_id, request.principal)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LoanNotFoundError:
        raise HTTPException(status_code=404, detail="Loan not found")
    except RemoteUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "loan_id": loan_id,
        "acknowledgement": ack,
        "message": "Loan amount updated successfully"
    }


@router.put("/{loan_id}/calculation-inputs")
async def update_calculation_inputs(
    loan_id: str,
    request: UpdateCalculationInputsRequest,
    service: CalculationService = Depends(get_calculation_service)
):
    """Change the processing fee percent or daily interest percent"""
    try:
        ack = await service.update_calculation_inputs(
            loan_id,
            processing_fee_percent=request.processing_fee_percent,
            interest_percent_per_day=request.interest_percent_per_day
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LoanNotFoundError:
        raise HTTPException(status_code=404, detail="Loan not found")
    except RemoteUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {
        "loan_id": loan_id,
        "acknowledgement": ack,
        "message": "Calculation inputs updated successfully"
    }

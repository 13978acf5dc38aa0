"""
Pydantic schemas for API requests
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class UpdateLoanAmountRequest(BaseModel):
    principal: str = Field(..., description="New principal as a decimal string")


class UpdateCalculationInputsRequest(BaseModel):
    processing_fee_percent: Optional[str] = Field(None, description="Processing fee percent, 0-100")
    interest_percent_per_day: Optional[str] = Field(None, description="Daily interest percent")


class LoanCalculationRequest(BaseModel):
    loan: Dict[str, Any] = Field(..., description="Loan record (snake_case or camelCase keys)")
    as_of: Optional[str] = None  # ISO date string


class ExtensionRequest(LoanCalculationRequest):
    emi_index: Optional[int] = None


class DisbursalRequest(BaseModel):
    loan: Dict[str, Any]
    wait: bool = True


class PreCloseRequest(BaseModel):
    principal: str
    interest_till_today: Optional[str] = None  # Decimal as string
    rate_per_day: Optional[str] = None
    disbursed_date: Optional[str] = None
    as_of: Optional[str] = None


class PenaltyRequest(BaseModel):
    principal: str
    dpd: Optional[int] = None
    due_date: Optional[str] = None
    as_of: Optional[str] = None

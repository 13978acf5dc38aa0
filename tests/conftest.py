"""
Shared fixtures for loan calculation tests
"""

import copy
import pytest
from decimal import Decimal

from loancalc.client import MockCalculationClient
from loancalc.config import LoanCalcConfig
from loancalc.service import CalculationService


REMOTE_PAYLOAD = {
    "success": True,
    "data": {
        "loanId": "L1",
        "principal": "10000",
        "interest": {
            "ratePerDay": "0.001",
            "exhaustedDays": 10,
            "totalInterestFullTenure": "150",
            "interestTillToday": "100",
        },
        "penalty": {"dpd": 0, "base": "0", "gst": "0", "total": "0"},
        "fees": {
            "deductFromDisbursal": [{"name": "Processing Fee", "baseAmount": "1000", "gstAmount": "180"}],
            "addToTotal": [{"name": "Post Service Fee", "baseAmount": "500", "gstAmount": "90"}],
        },
        "totals": {"disbursalFee": "1000", "disbursalFeeGST": "180", "repayableFee": "500", "repayableFeeGST": "90"},
        "disbursal": {"amount": "8820"},
        "repayment": {"schedule": []},
        "total": {"repayable": "10740"},
    }
}


def remote_payload(**changes):
    """Copy of the standard engine payload with top-level data fields replaced"""
    payload = copy.deepcopy(REMOTE_PAYLOAD)
    payload["data"].update(changes)
    return payload


@pytest.fixture
def config():
    return LoanCalcConfig()


@pytest.fixture
def mock_client():
    return MockCalculationClient(payloads={
        "L1": remote_payload(),
        "L2": remote_payload(loanId="L2", disbursal={"amount": "9500"}),
    })


@pytest.fixture
def service(mock_client, config):
    return CalculationService(mock_client, config=config)


@pytest.fixture
def loan_row():
    return {
        "id": "L1",
        "principal": "10000",
        "status": "disbursal",
        "disbursed_date": "2025-01-01",
        "due_date": "2025-01-15",
        "rate_per_day": "0.001",
    }


@pytest.fixture
def principal():
    return Decimal("10000")

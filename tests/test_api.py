"""
Integration tests for the loan calculation API
Tests endpoints end to end using FastAPI TestClient
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import remote_payload
from loancalc.api import app
from loancalc.api import dependencies
from loancalc.api.dependencies import get_calculation_service


@pytest.fixture
def client(service):
    """Test client backed by the in-memory calculation service"""
    app.dependency_overrides[get_calculation_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


SERVICING_LOAN = {
    "id": "L1",
    "principal": "10000",
    "status": "account_manager",
    "disbursed_date": "2025-01-01",
    "due_date": "2025-01-15",
    "rate_per_day": "0.001",
}


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Loan Calculation API"
        assert "calculations" in data["endpoints"]


class TestLoanCalculationEndpoints:
    """Test cached calculation reads and mutations"""

    def test_get_calculation(self, client, mock_client):
        r = client.get("/loans/L1/calculation")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "ready"
        assert data["result"]["disbursal"]["amount"] == "8820"

        client.get("/loans/L1/calculation")
        assert mock_client.calls["get_loan_calculation"] == 1

    def test_unknown_loan(self, client):
        r = client.get("/loans/L9/calculation")
        assert r.status_code == 404

    def test_service_unavailable(self, client, mock_client):
        mock_client.fail = True

        r = client.get("/loans/L1/calculation")

        assert r.status_code == 503

    def test_malformed_payload_is_unavailable(self, client, mock_client):
        mock_client.payloads["L3"] = remote_payload(loanId="L3", repayment=5)

        r = client.get("/loans/L3/calculation")

        assert r.status_code == 503

    def test_pending_then_ready(self, client, mock_client):
        r = client.get("/loans/L1/calculation", params={"wait": "false"})
        assert r.status_code == 202
        assert r.json()["status"] == "pending"

        r = client.get("/loans/L1/calculation")
        assert r.status_code == 200
        assert mock_client.calls["get_loan_calculation"] == 1

    def test_invalidate(self, client, mock_client):
        client.get("/loans/L1/calculation")

        r = client.delete("/loans/L1/calculation")
        assert r.status_code == 204

        client.get("/loans/L1/calculation")
        assert mock_client.calls["get_loan_calculation"] == 2

    def test_update_amount(self, client):
        r = client.put("/loans/L1/amount", json={"principal": "15000"})
        assert r.status_code == 200
        assert r.json()["message"] == "Loan amount updated successfully"

        r = client.get("/loans/L1/calculation")
        assert r.json()["result"]["principal"] == "15000"

    def test_update_amount_rejects_non_positive(self, client, mock_client):
        r = client.put("/loans/L1/amount", json={"principal": "0"})
        assert r.status_code == 400
        assert "update_loan_amount" not in mock_client.calls

    def test_update_amount_unknown_loan(self, client):
        r = client.put("/loans/L9/amount", json={"principal": "5000"})
        assert r.status_code == 404

    def test_update_calculation_inputs(self, client, mock_client):
        r = client.put("/loans/L1/calculation-inputs", json={"processing_fee_percent": "12"})
        assert r.status_code == 200
        assert len(mock_client.updates) == 1

    def test_update_calculation_inputs_requires_a_field(self, client):
        r = client.put("/loans/L1/calculation-inputs", json={})
        assert r.status_code == 400


class TestCalculationEndpoints:
    """Test stateless calculation endpoints"""

    def test_pre_close(self, client):
        r = client.post("/calculations/pre-close", json={
            "principal": "100000",
            "interest_till_today": "250.456"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["preCloseAmount"] == "112050.46"
        assert data["preCloseFeeGST"] == "1800.00"

    def test_pre_close_needs_interest_inputs(self, client):
        r = client.post("/calculations/pre-close", json={"principal": "100000"})
        assert r.status_code == 400

    def test_penalty_from_dpd(self, client):
        r = client.post("/calculations/penalty", json={"principal": "100000", "dpd": 15})
        assert r.status_code == 200
        data = r.json()
        assert data["dpd"] == 15
        assert data["base"] == "12000.00"
        assert data["gst"] == "2160.00"

    def test_penalty_from_dates(self, client):
        r = client.post("/calculations/penalty", json={
            "principal": "100000",
            "due_date": "2025-01-15",
            "as_of": "2025-01-30"
        })
        assert r.status_code == 200
        assert r.json()["dpd"] == 15

    def test_preview(self, client):
        loan = dict(SERVICING_LOAN, status="disbursal")
        r = client.post("/calculations/preview", json={"loan": loan, "as_of": "2025-01-10"})
        assert r.status_code == 200
        data = r.json()
        assert data["source"] == "preview"
        assert data["disbursal"]["amount"] is None

    def test_preview_of_frozen_loan_conflicts(self, client):
        loan = dict(SERVICING_LOAN, processed_snapshot={
            "principal": "10000", "interest": "150", "penalty": "0", "gst": "0",
            "processing_fee": "1000", "post_service_fee": "500"
        })
        r = client.post("/calculations/preview", json={"loan": loan})
        assert r.status_code == 409

    def test_preview_rejects_bad_loan(self, client):
        r = client.post("/calculations/preview", json={"loan": {"id": "L1", "status": "bogus"}})
        assert r.status_code == 400

    def test_extension_quote(self, client):
        r = client.post("/calculations/extension", json={"loan": SERVICING_LOAN, "as_of": "2025-01-15"})
        assert r.status_code == 200
        data = r.json()
        assert data["eligible"] is True
        assert data["totalExtensionAmount"] == "2628.00"

    def test_disbursal_uses_stored_amount(self, client, mock_client):
        loan = dict(SERVICING_LOAN, stored_disbursal_amount="8800")
        r = client.post("/calculations/disbursal", json={"loan": loan})
        assert r.status_code == 200
        data = r.json()
        assert data["amount"] == "8800"
        assert data["source"] == "stored"
        assert "get_loan_calculation" not in mock_client.calls

    def test_disbursal_from_service(self, client):
        loan = {"id": "L2", "principal": "10000", "status": "repeat_disbursal", "stored_disbursal_amount": "7000"}
        r = client.post("/calculations/disbursal", json={"loan": loan})
        assert r.status_code == 200
        data = r.json()
        assert data["amount"] == "9500"
        assert data["source"] == "remote"


class TestLifespan:
    """Test application shutdown"""

    def test_shutdown_closes_calculation_service(self):
        with patch.object(dependencies.calculation_service, "close", new=AsyncMock()) as mock_close:
            with TestClient(app):
                mock_close.assert_not_awaited()
            mock_close.assert_awaited_once()

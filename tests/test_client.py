"""
Tests for the calculation service client
"""

import pytest
import httpx
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from conftest import remote_payload
from loancalc.client import CalculationServiceClient, MockCalculationClient
from loancalc.config import LoanCalcConfig
from loancalc.errors import LoanNotFoundError, RemoteUnavailableError


BASE_URL = "http://calc.test/api"


def response(status_code, payload=None, text=None):
    request = httpx.Request("GET", BASE_URL)
    if payload is not None:
        return httpx.Response(status_code, json=payload, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


class TestCalculationServiceClient:
    """Test REST client against a patched transport"""

    def setup_method(self):
        self.client = CalculationServiceClient(base_url=BASE_URL + "/", timeout=5.0, api_key="test-key")

    def test_initialization(self):
        assert self.client.base_url == BASE_URL
        assert self.client.timeout == 5.0
        assert self.client.api_key == "test-key"

    def test_from_config(self):
        config = LoanCalcConfig(calculation_service_url=BASE_URL, calculation_service_api_key="")
        client = CalculationServiceClient.from_config(config)

        assert client.base_url == BASE_URL
        assert client.api_key is None

    @pytest.mark.asyncio
    async def test_get_loan_calculation(self):
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(200, remote_payload()))) as mock_request:
            result = await self.client.get_loan_calculation("L1")

        assert result.loan_id == "L1"
        assert result.disbursal.amount == Decimal("8820")

        args, kwargs = mock_request.call_args
        assert args == ("GET", f"{BASE_URL}/loan-calculations/L1")
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_not_found(self):
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(404, {"message": "no"}))):
            with pytest.raises(LoanNotFoundError):
                await self.client.get_loan_calculation("missing")

    @pytest.mark.asyncio
    async def test_server_error(self):
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(500, text="boom"))):
            with pytest.raises(RemoteUnavailableError) as exc_info:
                await self.client.get_loan_calculation("L1")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_error(self):
        error = httpx.ConnectError("Connection refused")
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(side_effect=error)):
            with pytest.raises(RemoteUnavailableError):
                await self.client.get_loan_calculation("L1")

    @pytest.mark.asyncio
    async def test_timeout(self):
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
            with pytest.raises(RemoteUnavailableError):
                await self.client.get_loan_calculation("L1")

    @pytest.mark.asyncio
    async def test_failure_envelope(self):
        payload = {"success": False, "message": "calculation failed"}
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(200, payload))):
            with pytest.raises(RemoteUnavailableError, match="calculation failed"):
                await self.client.get_loan_calculation("L1")

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        payload = {"loanId": "L1", "principal": "lots"}
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(200, payload))):
            with pytest.raises(RemoteUnavailableError):
                await self.client.get_loan_calculation("L1")

    @pytest.mark.asyncio
    async def test_update_loan_amount(self):
        ack = {"success": True}
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(200, ack))) as mock_request:
            result = await self.client.update_loan_amount("L1", Decimal("15000"))

        assert result == ack
        args, kwargs = mock_request.call_args
        assert args == ("PUT", f"{BASE_URL}/loans/L1/amount")
        assert kwargs["json"] == {"principalAmount": "15000"}

    @pytest.mark.asyncio
    async def test_update_calculation_inputs_sends_only_given_fields(self):
        with patch.object(httpx.AsyncClient, "request", new=AsyncMock(return_value=response(200, {"success": True}))) as mock_request:
            await self.client.update_loan_calculation_inputs("L1", processing_fee_percent=Decimal("12.5"))

        args, kwargs = mock_request.call_args
        assert args == ("PUT", f"{BASE_URL}/loan-calculations/L1")
        assert kwargs["json"] == {"processing_fee_percent": "12.5"}

    @pytest.mark.asyncio
    async def test_health_check(self):
        with patch.object(httpx.AsyncClient, "get", new=AsyncMock(return_value=response(200, {"status": "ok"}))):
            assert await self.client.health_check() is True

        with patch.object(httpx.AsyncClient, "get", new=AsyncMock(side_effect=httpx.ConnectError("down"))):
            assert await self.client.health_check() is False

    @pytest.mark.asyncio
    async def test_close(self):
        with patch.object(httpx.AsyncClient, "aclose", new=AsyncMock()) as mock_close:
            await self.client.close()
        mock_close.assert_awaited_once()


class TestMalformedPayloads:
    """Test that unusable payloads surface as an unavailable service"""

    def client_returning(self, payload):
        def handler(request):
            return httpx.Response(200, json=payload)
        return CalculationServiceClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_non_numeric_emi_number(self):
        payload = remote_payload(repayment={"schedule": [
            {"emiNumber": "first", "dueDate": "2025-02-05", "emiAmount": "5500"}
        ]})
        client = self.client_returning(payload)

        with pytest.raises(RemoteUnavailableError):
            await client.get_loan_calculation("L1")
        await client.close()

    @pytest.mark.asyncio
    async def test_non_numeric_exhausted_days(self):
        interest = dict(remote_payload()["data"]["interest"], exhaustedDays="ten")
        client = self.client_returning(remote_payload(interest=interest))

        with pytest.raises(RemoteUnavailableError):
            await client.get_loan_calculation("L1")
        await client.close()

    @pytest.mark.asyncio
    async def test_repayment_of_wrong_type(self):
        client = self.client_returning(remote_payload(repayment=5))

        with pytest.raises(RemoteUnavailableError):
            await client.get_loan_calculation("L1")
        await client.close()

    @pytest.mark.asyncio
    async def test_array_body(self):
        client = self.client_returning([remote_payload()])

        with pytest.raises(RemoteUnavailableError):
            await client.get_loan_calculation("L1")
        await client.close()

    @pytest.mark.asyncio
    async def test_well_formed_payload_through_transport(self):
        client = self.client_returning(remote_payload())

        result = await client.get_loan_calculation("L1")

        assert result.principal == Decimal("10000")
        await client.close()


class TestMockCalculationClient:
    """Test in-memory client used by the service tests"""

    def setup_method(self):
        self.client = MockCalculationClient(payloads={"L1": remote_payload()})

    @pytest.mark.asyncio
    async def test_serves_payloads_and_counts_calls(self):
        result = await self.client.get_loan_calculation("L1")

        assert result.principal == Decimal("10000")
        assert self.client.calls["get_loan_calculation"] == 1

    @pytest.mark.asyncio
    async def test_unknown_loan(self):
        with pytest.raises(LoanNotFoundError):
            await self.client.get_loan_calculation("L9")

    @pytest.mark.asyncio
    async def test_failure_toggle(self):
        self.client.fail = True

        with pytest.raises(RemoteUnavailableError):
            await self.client.get_loan_calculation("L1")
        assert await self.client.health_check() is False

    @pytest.mark.asyncio
    async def test_update_loan_amount_changes_served_principal(self):
        await self.client.update_loan_amount("L1", Decimal("15000"))

        result = await self.client.get_loan_calculation("L1")

        assert result.principal == Decimal("15000")
        assert self.client.updates == [("L1", Decimal("15000"))]

    @pytest.mark.asyncio
    async def test_malformed_stored_payload(self):
        self.client.payloads["L3"] = remote_payload(penalty={"dpd": "many"})

        with pytest.raises(RemoteUnavailableError):
            await self.client.get_loan_calculation("L3")

"""
Calculation Service Client Module

Async REST client for the remote loan calculation engine, which is the
authority for disbursal amounts, schedules and fee totals.
"""

import asyncio
import copy
import httpx
import logging
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from .errors import LoanNotFoundError, RemoteUnavailableError
from .results import CalculationResult

logger = logging.getLogger("loancalc.client")


def parse_calculation(data: Any, loan_id: str) -> CalculationResult:
    """
    Parse a calculation payload

    Raises:
        RemoteUnavailableError: If the payload is not a usable calculation
    """
    if not isinstance(data, dict):
        raise RemoteUnavailableError(f"Calculation service returned a {type(data).__name__}, expected an object")
    try:
        return CalculationResult.from_dict(data, loan_id=loan_id)
    except (ValueError, TypeError, AttributeError, KeyError) as e:
        # InvalidInputError is a ValueError
        logger.warning(f"Unusable calculation payload for loan {loan_id}: {e}")
        raise RemoteUnavailableError(f"Calculation service returned an unusable payload: {e}") from e


class CalculationServiceClient:
    """REST client for the remote calculation service"""

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config) -> "CalculationServiceClient":
        return cls(
            base_url=config.calculation_service_url,
            timeout=config.calculation_service_timeout,
            api_key=config.calculation_service_api_key or None
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, loan_id: str,
                       payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        start = time.time()
        try:
            response = await self._client.request(method, url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning(f"Calculation service unreachable for loan {loan_id}: {e}")
            raise RemoteUnavailableError(f"Calculation service unreachable: {e}") from e

        latency_ms = (time.time() - start) * 1000
        logger.debug(f"{method} {path} -> {response.status_code} in {latency_ms:.1f}ms")

        if response.status_code == 404:
            raise LoanNotFoundError(loan_id)
        if response.status_code >= 400:
            logger.warning(f"Calculation service returned {response.status_code}: {response.text}")
            raise RemoteUnavailableError(
                f"Calculation service returned {response.status_code}",
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailableError("Calculation service returned malformed JSON",
                                         status_code=response.status_code) from e

        if isinstance(data, dict) and data.get("success") is False:
            raise RemoteUnavailableError(data.get("message") or "Calculation service reported failure",
                                         status_code=response.status_code)
        return data

    async def get_loan_calculation(self, loan_id: str) -> CalculationResult:
        """
        Fetch the authoritative calculation for a loan

        Raises:
            LoanNotFoundError: If the service does not know the loan
            RemoteUnavailableError: On transport failure or a non-2xx reply
        """
        data = await self._request("GET", f"/loan-calculations/{loan_id}", loan_id)
        return parse_calculation(data, loan_id)

    async def update_loan_calculation_inputs(
        self,
        loan_id: str,
        processing_fee_percent: Optional[Decimal] = None,
        interest_percent_per_day: Optional[Decimal] = None
    ) -> Dict[str, Any]:
        """Update the fee or rate inputs the service calculates from"""
        payload = {}
        if processing_fee_percent is not None:
            payload["processing_fee_percent"] = str(processing_fee_percent)
        if interest_percent_per_day is not None:
            payload["interest_percent_per_day"] = str(interest_percent_per_day)
        return await self._request("PUT", f"/loan-calculations/{loan_id}", loan_id, payload)

    async def update_loan_amount(self, loan_id: str, new_principal: Decimal) -> Dict[str, Any]:
        """Change the loan's principal"""
        return await self._request("PUT", f"/loans/{loan_id}/amount", loan_id,
                                   {"principalAmount": str(new_principal)})

    async def health_check(self) -> bool:
        """Check if the calculation service is healthy"""
        try:
            r = await self._client.get(f"{self.base_url}/health")
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self):
        """Close the HTTP client"""
        await self._client.aclose()


class MockCalculationClient(CalculationServiceClient):
    """In-memory client for testing; serves registered payloads and counts calls"""

    def __init__(self, payloads: Optional[Dict[str, Dict[str, Any]]] = None, **kwargs):
        super().__init__(**kwargs)
        self.payloads = dict(payloads or {})
        self.fail = False
        self.delay = 0.0
        self.calls: Dict[str, int] = {}
        self.updates: list = []

    def _record(self, name: str):
        self.calls[name] = self.calls.get(name, 0) + 1

    async def _maybe_fail(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RemoteUnavailableError("Mock calculation service unavailable", status_code=503)

    async def get_loan_calculation(self, loan_id: str) -> CalculationResult:
        self._record("get_loan_calculation")
        await self._maybe_fail()
        if loan_id not in self.payloads:
            raise LoanNotFoundError(loan_id)
        return parse_calculation(self.payloads[loan_id], loan_id)

    async def update_loan_calculation_inputs(self, loan_id: str, processing_fee_percent=None,
                                             interest_percent_per_day=None) -> Dict[str, Any]:
        self._record("update_loan_calculation_inputs")
        await self._maybe_fail()
        if loan_id not in self.payloads:
            raise LoanNotFoundError(loan_id)
        self.updates.append((loan_id, processing_fee_percent, interest_percent_per_day))
        return {"success": True, "loanId": loan_id}

    async def update_loan_amount(self, loan_id: str, new_principal: Decimal) -> Dict[str, Any]:
        self._record("update_loan_amount")
        await self._maybe_fail()
        if loan_id not in self.payloads:
            raise LoanNotFoundError(loan_id)
        payload = copy.deepcopy(self.payloads[loan_id])
        body = payload["data"] if isinstance(payload.get("data"), dict) else payload
        body["principal"] = str(new_principal)
        self.payloads[loan_id] = payload
        self.updates.append((loan_id, new_principal))
        return {"success": True, "loanId": loan_id}

    async def health_check(self) -> bool:
        """Mock health check reflects the failure toggle"""
        return not self.fail

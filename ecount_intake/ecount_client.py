"""
Ecount ERP HTTP client.

Thin transport over the Ecount Open API:
- POST /login          - issue a session
- POST /item/search    - item master lookup
- POST /sale/upload    - create sales slips (/order/upload for sales orders)

The client only moves bytes and decodes JSON. Deciding whether a response is
a success belongs to the session manager and the submitter.
"""

from __future__ import annotations
import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import httpx

from .config import EcountConfig
from .erp_payload import KST, UPLOAD_LIST_KEYS
from .errors import UpstreamError, UpstreamParseError, UpstreamTimeoutError
from .models import OrderType
from .services.product_matching import MOCK_CATALOG


RAW_BODY_LIMIT = 500

UPLOAD_PATHS = {
    OrderType.SALE: "/sale/upload",
    OrderType.ORDER: "/order/upload",
}


@dataclass
class VendorResponse:
    """A decoded vendor response."""
    status_code: int
    data: Any
    raw_text: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class EcountClient:
    """
    Client for the Ecount Open API.

    Raises UpstreamTimeoutError on timeouts, UpstreamError on transport
    failures and UpstreamParseError when the body is not JSON. HTTP error
    statuses are returned, not raised.
    """

    def __init__(self, config: EcountConfig, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the client.

        Args:
            config: Ecount connection configuration
            http_client: Optional preconfigured httpx client (tests inject a MockTransport)
        """
        self.config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "EcountClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post(self, path: str, payload: dict) -> VendorResponse:
        started = time.monotonic()
        try:
            response = await self._http.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Ecount {path} timed out after {self.config.timeout_seconds:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Ecount {path} unreachable: {e}") from e

        duration_ms = int((time.monotonic() - started) * 1000)
        raw_text = response.text
        try:
            data = json.loads(raw_text) if raw_text.strip() else {}
        except ValueError as e:
            raise UpstreamParseError(
                f"Invalid JSON response from Ecount {path}: {raw_text[:RAW_BODY_LIMIT]}",
                status=response.status_code,
                body=raw_text[:RAW_BODY_LIMIT],
            ) from e

        return VendorResponse(
            status_code=response.status_code,
            data=data,
            raw_text=raw_text,
            duration_ms=duration_ms,
        )

    async def login(self, company_code: str, user_id: str, api_key: str) -> VendorResponse:
        return await self._post("/login", {
            "company_code": company_code,
            "user_id": user_id,
            "api_key": api_key,
        })

    async def search_items(self, session_id: str, keyword: str) -> VendorResponse:
        return await self._post("/item/search", {
            "SESSION_ID": session_id,
            "PROD_CD": keyword,
        })

    async def upload(self, session_id: str, payload: dict, order_type: OrderType = OrderType.SALE) -> VendorResponse:
        body = dict(payload)
        body["SESSION_ID"] = session_id
        return await self._post(UPLOAD_PATHS[order_type], body)


class MockEcountClient(EcountClient):
    """
    In-process stand-in for the Ecount API.

    Answers login, item search and upload from the mock catalog so the
    pipeline can run without vendor credentials.
    """

    _slip_counter = 0

    def __init__(self, config: Optional[EcountConfig] = None, quantity_info: Optional[dict] = None):
        """Initialize mock client (config not required)."""
        self.config = config or EcountConfig(use_mock=True)
        self._owns_client = False
        self.quantity_info = quantity_info
        self.calls: list[tuple[str, dict]] = []

    async def aclose(self) -> None:
        return None

    async def _post(self, path: str, payload: dict) -> VendorResponse:
        self.calls.append((path, payload))
        if path == "/login":
            data = self._login(payload)
        elif path == "/item/search":
            data = self._search(payload)
        else:
            data = self._upload(payload)
        status = 200 if data.get("Status", "200") == "200" else int(data["Status"])
        return VendorResponse(status_code=status, data=data, raw_text=json.dumps(data), duration_ms=0)

    def _login(self, payload: dict) -> dict:
        if not all(payload.get(k) for k in ("company_code", "user_id", "api_key")):
            return {"Status": "401", "Error": {"Code": "LOGIN_FAILED", "Message": "Invalid credentials"}}
        return {"Status": "200", "session_id": f"mock-session-{int(time.time())}"}

    def _search(self, payload: dict) -> dict:
        keyword = str(payload.get("PROD_CD", "")).lower()
        result = [
            {"PROD_CD": item.code, "PROD_DES": item.name, "OUT_PRICE": item.unit_price, "UNIT": item.unit}
            for item in MOCK_CATALOG
            if keyword in item.name.lower() or keyword in item.code.lower()
        ]
        return {"Status": "200", "Data": {"Result": result}}

    def _upload(self, payload: dict) -> dict:
        lines = next((payload[k] for k in UPLOAD_LIST_KEYS.values() if k in payload), [])
        MockEcountClient._slip_counter += 1
        slip_no = f"{datetime.now(KST):%Y%m%d}-{MockEcountClient._slip_counter}"
        data: dict[str, Any] = {
            "Status": "200",
            "Error": None,
            "Data": {"SuccessCnt": len(lines), "FailCnt": 0, "SlipNos": [slip_no]},
        }
        if self.quantity_info:
            data["QUANTITY_INFO"] = self.quantity_info
        return data

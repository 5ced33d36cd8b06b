"""Item master lookup through the Ecount search endpoint."""

from __future__ import annotations
import time
from typing import Optional

from .config import EcountCredentials
from .ecount_client import EcountClient
from .erp_payload import parse_search_results, vendor_error
from .errors import UpstreamError, ValidationError
from .models import MatchedItem
from .services.audit import AuditLogger, new_trace_id
from .services.retry import NO_RETRY, RetryPolicy
from .session import SessionManager


class CatalogService:
    """Searches the ERP item master and normalizes the results."""

    def __init__(
        self,
        client: EcountClient,
        sessions: SessionManager,
        credentials: EcountCredentials,
        audit: Optional[AuditLogger] = None,
        retry_policy: RetryPolicy = NO_RETRY,
    ):
        self.client = client
        self.sessions = sessions
        self.credentials = credentials
        self.audit = audit or sessions.audit
        self.retry_policy = retry_policy

    async def search(self, keyword: str, trace_id: Optional[str] = None) -> list[MatchedItem]:
        """
        Search items by keyword.

        Raises:
            ValidationError: empty keyword
            UpstreamError: login or search failed
        """
        keyword = (keyword or "").strip()
        if not keyword:
            raise ValidationError("Keyword is required")

        trace_id = trace_id or new_trace_id()
        creds = self.credentials
        session_id = await self.sessions.ensure_session(
            creds.company_code, creds.user_id, creds.api_key, trace_id=trace_id
        )

        request_summary = {"keyword": keyword, "session_id": session_id}
        started = time.monotonic()
        try:
            response = await self.retry_policy.run(
                lambda: self.client.search_items(session_id, keyword),
                "ecount item search",
            )
        except UpstreamError as e:
            e.trace_id = trace_id
            await self.audit.call(trace_id, "/item/search", started, request_summary,
                                  {"error": e.message}, e.status)
            raise

        if not response.ok:
            message, code = vendor_error(response.data)
            await self.audit.call(trace_id, "/item/search", started, request_summary,
                                  {"error": message, "response": response.data}, response.status_code)
            raise UpstreamError(
                message or f"Ecount item search failed (HTTP {response.status_code})",
                status=response.status_code,
                body=response.data,
                vendor_code=code,
                trace_id=trace_id,
            )

        items = parse_search_results(response.data)
        await self.audit.call(trace_id, "/item/search", started, request_summary,
                              {"total": len(items)}, response.status_code)
        return items

"""Submission of enriched orders to Ecount as sales slips."""

from __future__ import annotations
import time
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from .config import EcountCredentials
from .ecount_client import UPLOAD_PATHS, EcountClient, VendorResponse
from .erp_payload import (
    KST,
    build_upload_payload,
    check_rate_limit,
    extract_quantity_info,
    extract_slip_nos,
    generate_slip_reference,
    upload_succeeded,
    vendor_error,
)
from .errors import DomainError, IntakeError, UpstreamError
from .models import ParsedOrder, SubmitResult
from .services.audit import AuditLogger, new_trace_id
from .session import SessionManager, utcnow


# Status with which Ecount rejects an expired or unknown session.
SESSION_REJECTED_STATUS = 401


class OrderSubmitter:
    """
    Uploads one order as one sales slip.

    Failed uploads are not retried here; the caller decides. The only
    transparent repeat is a single re-login when the vendor rejects a cached
    session, after which the upload is sent once more.
    """

    def __init__(
        self,
        client: EcountClient,
        sessions: SessionManager,
        credentials: EcountCredentials,
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.sessions = sessions
        self.credentials = credentials
        self.audit = audit or sessions.audit
        self.clock = clock

    async def submit(self, order: ParsedOrder, trace_id: Optional[str] = None) -> SubmitResult:
        """
        Validate, map and upload an order.

        Args:
            order: Order whose lines went through the matcher
            trace_id: Optional trace id, generated when omitted

        Returns:
            SubmitResult with the vendor slip number and advisory rate-limit state

        Raises:
            DomainError: order total is not positive (no network call is made)
            CredentialsMissingError: ERP credentials are not configured
            UpstreamError: login or upload failed; the vendor message is preserved
        """
        unmatched = order.unmatched_items
        if unmatched:
            logger.warning("Submitting {} unmatched item(s) at price 0: {}", len(unmatched), unmatched)

        total = order.total_amount
        if total <= 0:
            raise DomainError("Order total is non-positive, check item matching", trace_id=trace_id)

        trace_id = trace_id or new_trace_id()
        today = self.clock().astimezone(KST).date()
        slip_reference = generate_slip_reference(today)
        payload = build_upload_payload(order, slip_reference, trace_id, io_date=today)
        endpoint = UPLOAD_PATHS[order.order_type]
        creds = self.credentials

        request_summary = {
            "customer_name": order.customer_name,
            "order_type": order.order_type.value,
            "items_count": len(order.items),
            "total_amount": total,
            "slip_reference": slip_reference,
            "company_code": creds.company_code,
            "user_id": creds.user_id,
            "api_key": creds.api_key,
        }
        started = time.monotonic()
        relogin = False

        try:
            session_id = await self.sessions.ensure_session(
                creds.company_code, creds.user_id, creds.api_key, trace_id=trace_id
            )
            request_summary["session_id"] = session_id
            response = await self.client.upload(session_id, payload, order.order_type)

            if response.status_code == SESSION_REJECTED_STATUS:
                logger.info("Ecount rejected cached session, logging in again (trace {})", trace_id)
                relogin = True
                await self.sessions.invalidate(creds.company_code, creds.user_id)
                session_id = await self.sessions.ensure_session(
                    creds.company_code, creds.user_id, creds.api_key, trace_id=trace_id
                )
                request_summary["session_id"] = session_id
                response = await self.client.upload(session_id, payload, order.order_type)
        except IntakeError as e:
            e.trace_id = trace_id
            await self.audit.call(trace_id, endpoint, started, request_summary, {
                "success": False,
                "error": e.message,
                "kind": e.kind.value,
                "relogin": relogin,
            }, getattr(e, "status", None))
            raise

        return await self._finish(order, response, trace_id, endpoint, started,
                                  request_summary, relogin, total)

    async def _finish(
        self,
        order: ParsedOrder,
        response: VendorResponse,
        trace_id: str,
        endpoint: str,
        started: float,
        request_summary: dict,
        relogin: bool,
        total: float,
    ) -> SubmitResult:
        slip_nos = extract_slip_nos(response.data)
        quantity_info = extract_quantity_info(response.data)
        succeeded = response.ok and upload_succeeded(response.data)
        message, code = (None, None) if succeeded else vendor_error(response.data)

        await self.audit.call(trace_id, endpoint, started, request_summary, {
            "success": succeeded,
            "slip_nos": slip_nos,
            "quantity_info": quantity_info,
            "error": message,
            "vendor_code": code,
            "relogin": relogin,
            "response": None if succeeded else response.data,
        }, response.status_code)

        if not succeeded:
            raise UpstreamError(
                message or f"Ecount upload failed (HTTP {response.status_code})",
                status=response.status_code,
                body=response.data,
                vendor_code=code,
                trace_id=trace_id,
            )

        rate_limit = check_rate_limit(quantity_info, self.clock())
        if not rate_limit.allowed:
            logger.warning("Ecount {} quota exhausted, back off {}ms", rate_limit.window, rate_limit.backoff_ms)

        logger.info("Created Ecount slip {} for {} (trace {})", slip_nos[0], order.customer_name, trace_id)
        return SubmitResult(
            success=True,
            document_id=slip_nos[0],
            slip_nos=slip_nos,
            trace_id=trace_id,
            total_amount=total,
            items_count=len(order.items),
            unmatched_items=order.unmatched_items,
            rate_limit=rate_limit,
            relogin=relogin,
        )

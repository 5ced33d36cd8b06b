"""Checking an organization's Ecount credentials against the vendor."""

from __future__ import annotations
from typing import Awaitable, Callable, Optional

from loguru import logger

from .errors import CredentialsMissingError, UpstreamError
from .models import ConnectionTestResult
from .services.audit import VISIBLE_SUFFIX, new_trace_id
from .session import SessionManager


# Called with the outcome so the caller can persist connection status.
StatusCallback = Callable[[ConnectionTestResult], Awaitable[None]]


async def check_connection(
    sessions: SessionManager,
    company_code: Optional[str],
    user_id: Optional[str],
    api_key: Optional[str],
    on_result: Optional[StatusCallback] = None,
) -> ConnectionTestResult:
    """
    Log in with the given credentials and report the outcome.

    Vendor failures do not raise; they come back as ``success=False`` with the
    vendor message and code. Missing credentials still raise
    CredentialsMissingError since no call can be made.
    """
    trace_id = new_trace_id()
    # Keys too short to show a suffix without revealing them get none.
    suffix = api_key[-VISIBLE_SUFFIX:] if api_key and len(api_key) > VISIBLE_SUFFIX else None

    if not company_code or not user_id:
        raise CredentialsMissingError("Company code and Ecount user id are required", trace_id=trace_id)
    if not api_key:
        raise CredentialsMissingError("Ecount API key is not configured", trace_id=trace_id)

    try:
        # A test must hit the vendor, so it bypasses the session cache.
        await sessions.login(company_code, user_id, api_key, trace_id=trace_id)
        result = ConnectionTestResult(
            success=True,
            status="connected",
            trace_id=trace_id,
            masked_api_key_suffix=suffix,
        )
    except UpstreamError as e:
        logger.warning("Ecount connection test failed for {}: {}", company_code, e.message)
        result = ConnectionTestResult(
            success=False,
            status="error",
            trace_id=trace_id,
            masked_api_key_suffix=suffix,
            error=e.message,
            error_code=e.vendor_code or (str(e.status) if e.status else None),
            http_status=e.status,
        )

    if on_result is not None:
        try:
            await on_result(result)
        except Exception as exc:
            logger.error("Failed to save Ecount connection status: {}", exc)
    return result

"""Ecount session management: cached login with expiry."""

from __future__ import annotations
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from loguru import logger

from .ecount_client import EcountClient
from .erp_payload import extract_session_id, vendor_error
from .errors import CredentialsMissingError, UpstreamError, UpstreamLoginError
from .models import ErpSession
from .services.audit import AuditLogger, new_trace_id
from .services.retry import NO_RETRY, RetryPolicy
from .services.session_store import InMemorySessionStore, SessionStore


DEFAULT_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Issues and caches Ecount sessions.

    Concurrent callers that both see a missing or expired session will both
    log in and the last write wins. There is no single-flight lock: a second
    login is harmless to the vendor, only wasteful.
    """

    def __init__(
        self,
        client: EcountClient,
        store: Optional[SessionStore] = None,
        audit: Optional[AuditLogger] = None,
        ttl: timedelta = DEFAULT_TTL,
        retry_policy: RetryPolicy = NO_RETRY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.store = store or InMemorySessionStore()
        self.audit = audit or AuditLogger()
        self.ttl = ttl
        self.retry_policy = retry_policy
        self.clock = clock

    async def ensure_session(
        self,
        company_code: Optional[str],
        user_id: Optional[str],
        api_key: Optional[str],
        trace_id: Optional[str] = None,
    ) -> str:
        """
        Return a usable session id, logging in only when needed.

        Args:
            company_code: Ecount company code
            user_id: Ecount API user id
            api_key: Ecount API certification key
            trace_id: Trace id to file the login audit entry under

        Returns:
            The cached or freshly issued session id

        Raises:
            CredentialsMissingError: a credential is absent
            UpstreamLoginError: login did not return 200 with a session id
            UpstreamParseError: login body was not JSON
            UpstreamTimeoutError: login timed out
        """
        if not all(v and str(v).strip() for v in (company_code, user_id, api_key)):
            raise CredentialsMissingError("Ecount credentials are not configured", trace_id=trace_id)

        cached = await self.store.get(company_code, user_id)
        if cached is not None and cached.is_valid(self.clock()):
            return cached.session_id

        session = await self.login(company_code, user_id, api_key, trace_id=trace_id)
        return session.session_id

    async def login(
        self,
        company_code: str,
        user_id: str,
        api_key: str,
        trace_id: Optional[str] = None,
        persist: bool = True,
    ) -> ErpSession:
        """Always call the vendor login endpoint, then cache the new session."""
        trace_id = trace_id or new_trace_id()
        request_summary = {"company_code": company_code, "user_id": user_id, "api_key": api_key}
        started = time.monotonic()

        try:
            response = await self.retry_policy.run(
                lambda: self.client.login(company_code, user_id, api_key),
                "ecount login",
            )
        except UpstreamError as e:
            e.trace_id = trace_id
            await self.audit.call(trace_id, "/login", started, request_summary,
                                  {"error": e.message, "body": e.body}, e.status)
            raise

        session_id = extract_session_id(response.data)
        if response.status_code != 200 or not session_id:
            message, code = vendor_error(response.data)
            await self.audit.call(trace_id, "/login", started, request_summary,
                                  {"response": response.data, "success": False}, response.status_code)
            raise UpstreamLoginError(
                message or f"Ecount login failed (HTTP {response.status_code})",
                status=response.status_code,
                body=response.data,
                vendor_code=code,
                trace_id=trace_id,
            )

        session = ErpSession(
            company_code=company_code,
            user_id=user_id,
            session_id=session_id,
            expires_at=self.clock() + self.ttl,
        )
        if persist:
            await self.store.put(session)
        await self.audit.call(trace_id, "/login", started, request_summary,
                              {"session_id": session_id, "expires_at": session.expires_at.isoformat(),
                               "success": True}, response.status_code)
        logger.info("Issued Ecount session for company {} (expires {})",
                    company_code, session.expires_at.isoformat())
        return session

    async def invalidate(self, company_code: str, user_id: str) -> None:
        """Drop a cached session the vendor has rejected."""
        await self.store.delete(company_code, user_id)

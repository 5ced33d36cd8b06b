"""Main order pipeline: parse -> match -> (confirm) -> submit."""

from __future__ import annotations
from datetime import timedelta
from typing import Optional

from .catalog import CatalogService
from .config import EcountCredentials, Settings
from .connection import StatusCallback, check_connection
from .ecount_client import EcountClient, MockEcountClient
from .extractor import OrderParser
from .models import ConnectionTestResult, MatchedItem, ParsedOrder, SubmitResult
from .services.audit import AuditLogger, AuditSink, new_trace_id
from .services.product_matching import MOCK_CATALOG, ItemMatcher
from .services.retry import RetryPolicy
from .services.session_store import InMemorySessionStore, SessionStore
from .session import SessionManager
from .submitter import OrderSubmitter


class OrderPipeline:
    """
    Entry point used by the HTTP API and the CLI.

    Parsing and submission are separate calls: the user confirms (and may
    correct) the matched order in between.
    """

    def __init__(
        self,
        parser: OrderParser,
        client: EcountClient,
        credentials: EcountCredentials,
        sessions: Optional[SessionManager] = None,
        audit: Optional[AuditLogger] = None,
        matcher: Optional[ItemMatcher] = None,
        catalog: Optional[list[MatchedItem]] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            parser: LLM order parser
            client: Ecount client (real or mock)
            credentials: Ecount credentials used for search and submit
            sessions: Session manager (a fresh in-memory one when omitted)
            audit: Audit logger shared by every step
            matcher: Item matcher (default threshold when omitted)
            catalog: Items to match against (mock catalog when omitted)
        """
        self.audit = audit or AuditLogger()
        self.parser = parser
        self.client = client
        self.credentials = credentials
        self.sessions = sessions or SessionManager(client, audit=self.audit)
        self.matcher = matcher or ItemMatcher()
        self.catalog = catalog if catalog is not None else list(MOCK_CATALOG)
        self.submitter = OrderSubmitter(client, self.sessions, credentials, audit=self.audit)
        self.catalog_service = CatalogService(client, self.sessions, credentials, audit=self.audit,
                                              retry_policy=self.sessions.retry_policy)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_store: Optional[SessionStore] = None,
        audit_sink: Optional[AuditSink] = None,
        credentials: Optional[EcountCredentials] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "OrderPipeline":
        """Wire a pipeline from configuration."""
        audit = AuditLogger(audit_sink)
        if settings.ecount.use_mock:
            client: EcountClient = MockEcountClient(settings.ecount)
        else:
            client = EcountClient(settings.ecount)
        sessions = SessionManager(
            client,
            store=session_store or InMemorySessionStore(),
            audit=audit,
            ttl=timedelta(minutes=settings.ecount.session_ttl_minutes),
            retry_policy=retry_policy or RetryPolicy(max_attempts=2),
        )
        return cls(
            parser=OrderParser(settings.parser, audit=audit),
            client=client,
            credentials=credentials or settings.ecount.credentials,
            sessions=sessions,
            audit=audit,
            matcher=ItemMatcher(settings.match_threshold),
        )

    def for_credentials(self, credentials: EcountCredentials) -> "OrderPipeline":
        """Same parser, client and session cache, acting for another ERP account."""
        return OrderPipeline(
            parser=self.parser,
            client=self.client,
            credentials=credentials,
            sessions=self.sessions,
            audit=self.audit,
            matcher=self.matcher,
            catalog=self.catalog,
        )

    async def parse_order_text(self, text: str, trace_id: Optional[str] = None) -> ParsedOrder:
        """Parse order text and enrich every line with its catalog match."""
        trace_id = trace_id or new_trace_id()
        parsed = await self.parser.parse(text, trace_id=trace_id)
        return self.matcher.enrich(parsed, self.catalog)

    async def search_catalog(self, keyword: str) -> list[MatchedItem]:
        """Search the ERP item master."""
        return await self.catalog_service.search(keyword)

    async def submit_order(self, order: ParsedOrder) -> SubmitResult:
        """Upload a confirmed order to Ecount."""
        return await self.submitter.submit(order)

    async def test_connection(
        self,
        company_code: Optional[str] = None,
        user_id: Optional[str] = None,
        on_result: Optional[StatusCallback] = None,
    ) -> ConnectionTestResult:
        """Check credentials against the vendor; the API key is always the server-side secret."""
        return await check_connection(
            self.sessions,
            company_code or self.credentials.company_code,
            user_id or self.credentials.user_id,
            self.credentials.api_key,
            on_result=on_result,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

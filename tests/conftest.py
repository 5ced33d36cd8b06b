"""Shared fixtures: a routed Ecount stub, a fake Claude client, a fixed clock."""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ecount_intake.config import EcountConfig
from ecount_intake.db import init_db
from ecount_intake.ecount_client import EcountClient
from ecount_intake.models import OrderLineDraft, ParsedOrder
from ecount_intake.services.audit import AuditLogger, InMemoryAuditSink
from ecount_intake.services.product_matching import MOCK_CATALOG
from ecount_intake.services.session_store import InMemorySessionStore


BASE_URL = "https://ecount.test"


def login_ok(session_id="sess-0001"):
    return httpx.Response(200, json={"Status": "200", "Data": {"Datas": {"SESSION_ID": session_id}}})


def upload_ok(slip_no="20261019-1", quantity_info=None):
    body = {
        "Status": "200",
        "Error": None,
        "Data": {"SuccessCnt": 1, "FailCnt": 0, "SlipNos": [slip_no]},
    }
    if quantity_info is not None:
        body["QUANTITY_INFO"] = quantity_info
    return httpx.Response(200, json=body)


class EcountStub:
    """
    httpx MockTransport handler routing by path.

    Each path gets a queue of responses; the last one repeats. A queued item
    may be an httpx.Response, an exception class built with the request, or a
    callable taking the request.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, path, *responses):
        self.routes[path] = list(responses)
        return self

    def count(self, path):
        return sum(1 for p, _ in self.calls if p == path)

    def bodies(self, path):
        return [body for p, body in self.calls if p == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((path, json.loads(request.content or b"{}")))
        queue = self.routes.get(path)
        if not queue:
            return httpx.Response(404, json={"message": f"no route for {path}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, type) and issubclass(reply, Exception):
            raise reply(f"stubbed {reply.__name__}", request=request)
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        return reply

    def client(self, config: EcountConfig) -> EcountClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self), base_url=config.base_url)
        return EcountClient(config, http_client=http)


class FakeMessages:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        content = [SimpleNamespace(type="text", text=reply)] if reply else []
        return SimpleNamespace(content=content, stop_reason="end_turn")


class FakeAnthropic:
    """Stands in for AsyncAnthropic; replies are returned (or raised) in order."""

    def __init__(self, *replies):
        self.messages = FakeMessages(replies)


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 10, 19, 3, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_order(*lines, customer="A거래처", **kwargs):
    """Build an order from (code or raw name, quantity) pairs; unknown codes stay unmatched."""
    drafts = []
    for name, quantity in lines:
        matched = next((item for item in MOCK_CATALOG if item.code == name), None)
        drafts.append(OrderLineDraft(
            item_name_raw=matched.name if matched else name,
            quantity=quantity,
            matched_item=matched,
            confidence=1.0 if matched else 0.0,
        ))
    return ParsedOrder(customer_name=customer, items=drafts, **kwargs)


@pytest.fixture
def ecount_config():
    return EcountConfig(
        base_url=BASE_URL,
        company_code="COMP01",
        user_id="api_user",
        api_key="key-abcdef1234",
    )


@pytest.fixture
def credentials(ecount_config):
    return ecount_config.credentials


@pytest.fixture
def stub():
    return EcountStub()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def audit(audit_sink):
    return AuditLogger(audit_sink)


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db_factory():
    """Session factory over a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()

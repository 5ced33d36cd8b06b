"""Tests for LLM order parsing."""

import json

import anthropic
import httpx
import pytest

from conftest import FakeAnthropic
from ecount_intake.config import ParserConfig
from ecount_intake.errors import (
    ErrorKind,
    ParseError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from ecount_intake.extractor import (
    MAX_INPUT_CHARS,
    OrderParser,
    build_parsed_order,
    coerce_quantity,
    extract_json_object,
)
from ecount_intake.models import UNSPECIFIED_CUSTOMER


def make_parser(*replies, audit=None):
    client = FakeAnthropic(*replies)
    return OrderParser(ParserConfig(api_key="test"), client=client, audit=audit), client


def order_json(customer="A거래처", items=None):
    items = items if items is not None else [
        {"item_name": "깐쇼새우", "qty": 100},
        {"item_name": "새우볼", "qty": 50},
    ]
    data = {"items": items}
    if customer is not None:
        data["customer_name"] = customer
    return json.dumps(data, ensure_ascii=False)


class TestInputValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n\t"])
    async def test_empty_input_rejected_without_llm_call(self, text):
        parser, client = make_parser(order_json())

        with pytest.raises(ValidationError) as exc_info:
            await parser.parse(text)

        assert exc_info.value.status_code == 400
        assert client.messages.calls == []

    @pytest.mark.asyncio
    async def test_over_long_input_rejected(self):
        parser, client = make_parser(order_json())

        with pytest.raises(ValidationError):
            await parser.parse("가" * (MAX_INPUT_CHARS + 1))
        assert client.messages.calls == []

    @pytest.mark.asyncio
    async def test_input_at_limit_accepted(self):
        parser, _ = make_parser(order_json())

        order = await parser.parse("가" * MAX_INPUT_CHARS)

        assert len(order.items) == 2


class TestParse:

    @pytest.mark.asyncio
    async def test_parses_order(self):
        parser, client = make_parser(order_json())

        order = await parser.parse("A거래처, 깐쇼새우 100개, 새우볼 50개")

        assert order.customer_name == "A거래처"
        assert [(i.item_name_raw, i.quantity) for i in order.items] == [("깐쇼새우", 100), ("새우볼", 50)]
        assert all(i.matched_item is None for i in order.items)

    @pytest.mark.asyncio
    async def test_sends_configured_sampling(self):
        parser, client = make_parser(order_json())

        await parser.parse("깐쇼새우 100개")

        [call] = client.messages.calls
        assert call["temperature"] == 0.1
        assert call["max_tokens"] == 1000
        assert "깐쇼새우 100개" in call["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_json_wrapped_in_prose(self):
        reply = "Sure, here is the order:\n```json\n" + order_json() + "\n```\nLet me know!"
        parser, _ = make_parser(reply)

        order = await parser.parse("A거래처, 깐쇼새우 100개, 새우볼 50개")

        assert order.customer_name == "A거래처"
        assert len(order.items) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("customer", [None, "", "  "])
    async def test_missing_customer_defaults(self, customer):
        parser, _ = make_parser(order_json(customer=customer))

        order = await parser.parse("깐쇼새우 100개")

        assert order.customer_name == UNSPECIFIED_CUSTOMER

    @pytest.mark.asyncio
    async def test_string_quantities_are_coerced(self):
        parser, _ = make_parser(order_json(items=[
            {"item_name": "깐쇼새우", "qty": "1,000"},
            {"item_name": "새우볼", "qty": 50.0},
        ]))

        order = await parser.parse("깐쇼새우 천개, 새우볼 50개")

        assert [i.quantity for i in order.items] == [1000, 50]

    @pytest.mark.asyncio
    async def test_llm_call_is_audited(self, audit, audit_sink):
        parser, _ = make_parser(order_json(), audit=audit)

        await parser.parse("깐쇼새우 100개", trace_id="trace-llm")

        [entry] = audit_sink.for_trace("trace-llm")
        assert entry.endpoint == "llm/messages"
        assert entry.request_summary["input_chars"] == len("깐쇼새우 100개")


class TestParseFailures:

    @pytest.mark.asyncio
    async def test_zero_quantity_names_the_item(self):
        parser, _ = make_parser(order_json(items=[
            {"item_name": "깐쇼새우", "qty": 10},
            {"item_name": "새우볼", "qty": 0},
        ]))

        with pytest.raises(ParseError, match="Item 2"):
            await parser.parse("깐쇼새우 10개, 새우볼 0개")

    @pytest.mark.asyncio
    async def test_non_numeric_quantity(self):
        parser, _ = make_parser(order_json(items=[{"item_name": "깐쇼새우", "qty": "많이"}]))

        with pytest.raises(ParseError, match="Item 1") as exc_info:
            await parser.parse("깐쇼새우 많이", trace_id="trace-p")

        assert exc_info.value.trace_id == "trace-p"
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_empty_items(self):
        parser, _ = make_parser(order_json(items=[]))

        with pytest.raises(ParseError):
            await parser.parse("안녕하세요")

    @pytest.mark.asyncio
    async def test_reply_without_json(self):
        parser, _ = make_parser("I could not find an order in this message.")

        with pytest.raises(ParseError):
            await parser.parse("안녕하세요")

    @pytest.mark.asyncio
    async def test_empty_reply_is_upstream_error(self):
        parser, _ = make_parser("")

        with pytest.raises(UpstreamError) as exc_info:
            await parser.parse("깐쇼새우 100개")

        assert exc_info.value.kind == ErrorKind.UPSTREAM

    @pytest.mark.asyncio
    async def test_timeout(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        parser, _ = make_parser(anthropic.APITimeoutError(request=request))

        with pytest.raises(UpstreamTimeoutError):
            await parser.parse("깐쇼새우 100개")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        parser, _ = make_parser(anthropic.APIConnectionError(request=request))

        with pytest.raises(UpstreamError) as exc_info:
            await parser.parse("깐쇼새우 100개")

        assert exc_info.value.retryable is True
        assert exc_info.value.to_dict()["retryable"] is True


class TestHelpers:

    def test_extract_first_object(self):
        assert extract_json_object('noise {"a": 1} {"b": 2}') == {"a": 1}

    def test_extract_skips_broken_braces(self):
        assert extract_json_object('{oops} then {"items": []}') == {"items": []}

    def test_extract_returns_none_without_object(self):
        assert extract_json_object("[1, 2, 3]") is None

    @pytest.mark.parametrize("value,expected", [(3, 3), (3.0, 3), ("12", 12), (" 1,200 ", 1200), ("50.0", 50)])
    def test_coerce_quantity(self, value, expected):
        assert coerce_quantity(value) == expected

    @pytest.mark.parametrize("value", [True, 2.5, "abc", None, float("nan"), [1]])
    def test_coerce_quantity_rejects(self, value):
        with pytest.raises(ValueError):
            coerce_quantity(value)

    def test_build_requires_item_name(self):
        with pytest.raises(ParseError, match="Item 1"):
            build_parsed_order({"items": [{"item_name": " ", "qty": 1}]})


@pytest.mark.integration
class TestLiveParsing:
    """Integration tests that hit the actual API.

    Run with: pytest -m integration
    """

    @pytest.mark.asyncio
    async def test_korean_order(self):
        parser = OrderParser()

        order = await parser.parse("A거래처, 깐쇼새우 100개, 새우볼 50개")

        assert order.customer_name == "A거래처"
        assert [i.quantity for i in order.items] == [100, 50]

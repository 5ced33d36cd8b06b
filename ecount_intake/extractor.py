"""Order parsing from natural-language text using an LLM."""

from __future__ import annotations
import json
import math
import time
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from .config import ParserConfig
from .errors import ParseError, UpstreamError, UpstreamTimeoutError, ValidationError
from .models import UNSPECIFIED_CUSTOMER, OrderLineDraft, ParsedOrder
from .services.audit import AuditLogger, new_trace_id


MAX_INPUT_CHARS = 1000

PARSER_SYSTEM_PROMPT = f"""You convert Korean B2B order messages into JSON for an ERP upload.

Messages are short and informal, for example:
- "A거래처, 깐쇼새우 100개, 새우볼 50개"
- "B상사 탕수육 1kg 20개 보내주세요"

RULES:
1. customer_name is the customer (거래처) the order is for. If no customer is named, use "{UNSPECIFIED_CUSTOMER}".
2. Each item has item_name and qty.
   - item_name: the product as written, including size or weight (e.g. "탕수육 1kg").
   - qty: a number only. Drop counters such as 개, 박스, 봉, EA.
3. Do not merge, invent or reorder items.
4. Respond with the JSON object only. No markdown, no explanation."""


def create_parser_prompt(input_text: str) -> str:
    """Create the user prompt for one order message."""
    return f"""Parse this order message:

<message>
{input_text}
</message>

Return a JSON object with exactly this structure:
{{
    "customer_name": "string",
    "items": [
        {{"item_name": "string", "qty": number}}
    ]
}}"""


def extract_json_object(text: str) -> Optional[dict]:
    """Return the first top-level JSON object embedded in ``text``, if any."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except ValueError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def coerce_quantity(value: Any) -> int:
    """
    Convert an LLM quantity to an int.

    Accepts ints, integral floats and numeric strings ("100", "1,000", "50.0").

    Raises:
        ValueError: value is not a whole number
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a quantity")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        number = float(value.strip().replace(",", ""))
    else:
        raise ValueError(f"unsupported type {type(value).__name__}")
    if not math.isfinite(number) or not number.is_integer():
        raise ValueError(f"{value!r} is not a whole number")
    return int(number)


def build_parsed_order(data: Any) -> ParsedOrder:
    """
    Validate decoded LLM output and build a ParsedOrder.

    Raises:
        ParseError: missing items, bad item name or bad quantity (1-based index in message)
    """
    if not isinstance(data, dict):
        raise ParseError("LLM response is not a JSON object")

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ParseError("LLM response has no items array")

    lines = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ParseError(f"Item {index} is not an object")
        name = str(raw.get("item_name") or "").strip()
        if not name:
            raise ParseError(f"Item {index} has no item name")
        try:
            quantity = coerce_quantity(raw.get("qty"))
        except (TypeError, ValueError):
            raise ParseError(f"Item {index} ({name}) has a non-numeric quantity: {raw.get('qty')!r}")
        if quantity <= 0:
            raise ParseError(f"Item {index} ({name}) has a non-positive quantity: {quantity}")
        lines.append(OrderLineDraft(item_name_raw=name, quantity=quantity))

    customer_name = str(data.get("customer_name") or "").strip() or UNSPECIFIED_CUSTOMER
    return ParsedOrder(customer_name=customer_name, items=lines)


class OrderParser:
    """Parses natural-language order text into a ParsedOrder using Claude."""

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        client: Optional[AsyncAnthropic] = None,
        audit: Optional[AuditLogger] = None,
    ):
        """
        Initialize the parser.

        Args:
            config: Model and limits (uses environment when omitted)
            client: Optional preconfigured Anthropic client
            audit: Optional audit logger for the LLM call
        """
        self.config = config or ParserConfig.from_env()
        if client is None:
            kwargs: dict[str, Any] = {"timeout": self.config.timeout_seconds}
            if self.config.api_key:
                kwargs["api_key"] = self.config.api_key
            client = AsyncAnthropic(**kwargs)
        self.client = client
        self.audit = audit or AuditLogger()

    async def parse(self, input_text: str, trace_id: Optional[str] = None) -> ParsedOrder:
        """
        Parse order text.

        Args:
            input_text: Raw order message, 1 to 1000 characters

        Returns:
            ParsedOrder with at least one line and positive quantities

        Raises:
            ValidationError: empty or over-long input
            UpstreamError: the LLM call failed or returned no text
            ParseError: the response held no valid order JSON
        """
        if input_text is None or not input_text.strip():
            raise ValidationError("Order text is required")
        if len(input_text) > MAX_INPUT_CHARS:
            raise ValidationError(f"Order text must be at most {MAX_INPUT_CHARS} characters")

        trace_id = trace_id or new_trace_id()
        response_text = await self._complete(input_text, trace_id)

        data = extract_json_object(response_text)
        if data is None:
            raise ParseError("Could not find a JSON object in the LLM response", trace_id=trace_id)
        try:
            return build_parsed_order(data)
        except ParseError as e:
            e.trace_id = trace_id
            raise

    async def _complete(self, input_text: str, trace_id: str) -> str:
        request_summary = {"model": self.config.model, "input_chars": len(input_text)}
        started = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=PARSER_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": create_parser_prompt(input_text)}],
            )
        except anthropic.APITimeoutError as e:
            error: UpstreamError = UpstreamTimeoutError("LLM request timed out", trace_id=trace_id)
            await self._audit_failure(trace_id, started, request_summary, error)
            raise error from e
        except anthropic.APIStatusError as e:
            error = UpstreamError(f"LLM API error: {e.status_code} - {e.message}",
                                  status=e.status_code, body=e.body, trace_id=trace_id)
            await self._audit_failure(trace_id, started, request_summary, error)
            raise error from e
        except anthropic.APIConnectionError as e:
            error = UpstreamError(f"LLM API unreachable: {e}", trace_id=trace_id)
            await self._audit_failure(trace_id, started, request_summary, error)
            raise error from e

        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )
        await self.audit.call(trace_id, "llm/messages", started, request_summary, {
            "output_chars": len(text),
            "stop_reason": getattr(response, "stop_reason", None),
        }, 200)

        if not text.strip():
            raise UpstreamError("LLM returned no text", trace_id=trace_id)
        return text

    async def _audit_failure(self, trace_id: str, started: float, request_summary: dict, error: UpstreamError):
        await self.audit.call(trace_id, "llm/messages", started, request_summary,
                              {"error": error.message, "body": error.body}, error.status)

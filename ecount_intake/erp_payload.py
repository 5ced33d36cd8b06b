"""Mapping between internal orders and Ecount request/response shapes.

Vendor field names drift between API versions. Everything that reads a vendor
response goes through this module so the rest of the code sees one schema.
"""

from __future__ import annotations
import json
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .models import MatchedItem, OrderType, ParsedOrder, RateLimitStatus


# Ecount quota windows reset on Korean local time.
KST = timezone(timedelta(hours=9), name="KST")

UPLOAD_LIST_KEYS = {
    OrderType.SALE: "SaleList",
    OrderType.ORDER: "SaleOrderList",
}


def _first(raw: dict, *keys: str) -> Any:
    """Value of the first key present with a non-empty value."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_price(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        price = float(str(value).replace(",", ""))
    except ValueError:
        return 0.0
    return price if price >= 0 else 0.0


def normalize_vendor_item(raw: Any) -> Optional[MatchedItem]:
    """
    Convert one vendor item record into a MatchedItem.

    Precedence per field:
        code:  PROD_CD > code
        name:  PROD_DES > PROD_NM > name
        price: OUT_PRICE > PRICE > price (unparseable -> 0)
        unit:  UNIT > unit > "EA"

    Returns:
        MatchedItem, or None when the record has no item code
    """
    if not isinstance(raw, dict):
        return None
    code = _first(raw, "PROD_CD", "code")
    if not code:
        return None
    return MatchedItem(
        code=str(code),
        name=str(_first(raw, "PROD_DES", "PROD_NM", "name") or ""),
        unit_price=_to_price(_first(raw, "OUT_PRICE", "PRICE", "price")),
        unit=str(_first(raw, "UNIT", "unit") or "EA"),
    )


def parse_search_results(data: Any) -> list[MatchedItem]:
    """Normalize an /item/search response body. ``Result`` may be a JSON string."""
    if not isinstance(data, dict):
        return []
    container = data.get("Data") if isinstance(data.get("Data"), dict) else {}
    result = container.get("Result", data.get("Result", []))
    if isinstance(result, str):
        try:
            result = json.loads(result)
        except ValueError:
            result = []
    if result is None:
        result = []
    if not isinstance(result, list):
        result = [result]
    items = [normalize_vendor_item(raw) for raw in result]
    return [item for item in items if item is not None]


def extract_session_id(data: Any) -> Optional[str]:
    """Session id from a login body: ``session_id`` or ``Data.Datas.SESSION_ID``."""
    if not isinstance(data, dict):
        return None
    session_id = data.get("session_id")
    if not session_id and isinstance(data.get("Data"), dict):
        datas = data["Data"].get("Datas")
        if isinstance(datas, dict):
            session_id = datas.get("SESSION_ID")
    return str(session_id) if session_id else None


def vendor_error(data: Any) -> tuple[Optional[str], Optional[str]]:
    """
    Pull the vendor's own error message and code out of a response body.

    Returns:
        (message, code), either may be None
    """
    if not isinstance(data, dict):
        return None, None

    message = None
    code = None
    error = data.get("Error")
    if isinstance(error, dict):
        message = error.get("Message") or error.get("message")
        code = error.get("Code") or error.get("code")
    elif isinstance(error, str) and error:
        message = error

    if not message:
        errors = data.get("Errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                message = first.get("Message") or first.get("message")
                code = code or first.get("Code") or first.get("code")

    if not message and isinstance(data.get("Data"), dict):
        details = data["Data"].get("ResultDetails")
        if isinstance(details, list):
            failed = [d for d in details if isinstance(d, dict) and not d.get("IsSuccess", True)]
            if failed:
                message = failed[0].get("TotalError") or failed[0].get("Errors")
                message = str(message) if message else None

    message = message or data.get("message") or data.get("Message") or data.get("error")
    code = code or data.get("code") or data.get("Code") or data.get("ErrorCode")
    return (str(message) if message else None), (str(code) if code is not None else None)


def extract_slip_nos(data: Any) -> list[str]:
    """Slip numbers from ``Data.SlipNos`` or the legacy top-level ``SLIP_NOS``."""
    if not isinstance(data, dict):
        return []
    slip_nos = None
    if isinstance(data.get("Data"), dict):
        slip_nos = data["Data"].get("SlipNos")
    if slip_nos is None:
        slip_nos = data.get("SLIP_NOS") or data.get("slip_no") or data.get("SLIP_NO")
    if slip_nos is None:
        return []
    if not isinstance(slip_nos, list):
        slip_nos = [slip_nos]
    return [str(s) for s in slip_nos if s]


def upload_succeeded(data: Any) -> bool:
    """
    Whether an upload body carries the vendor's success markers.

    A body is successful when it reports no error, no failed lines, and at
    least one slip number. ``Status``, when present, must be "200".
    """
    if not isinstance(data, dict):
        return False
    status = data.get("Status")
    if status is not None and str(status) != "200":
        return False
    if data.get("Error"):
        return False
    container = data.get("Data") if isinstance(data.get("Data"), dict) else {}
    fail_count = container.get("FailCnt")
    if fail_count not in (None, 0, "0"):
        return False
    return bool(extract_slip_nos(data))


def extract_quantity_info(data: Any) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    info = data.get("QUANTITY_INFO")
    if info is None and isinstance(data.get("Data"), dict):
        info = data["Data"].get("QUANTITY_INFO")
    if isinstance(info, str):
        try:
            info = json.loads(info)
        except ValueError:
            return None
    return info if isinstance(info, dict) else None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def check_rate_limit(quantity_info: Optional[dict], now: Optional[datetime] = None) -> RateLimitStatus:
    """
    Turn vendor quota counters into advisory backoff.

    When the hourly window is exhausted the backoff runs to the next full hour;
    when the daily window is exhausted it runs to the next midnight (KST).
    The hourly window is checked first.
    """
    if not quantity_info:
        return RateLimitStatus()

    now = (now or datetime.now(timezone.utc)).astimezone(KST)
    hour_limit = _as_int(quantity_info.get("HOUR_LIMIT"))
    hour_used = _as_int(quantity_info.get("HOUR_USED"))
    day_limit = _as_int(quantity_info.get("DAY_LIMIT"))
    day_used = _as_int(quantity_info.get("DAY_USED"))

    if hour_limit is not None and hour_used is not None and hour_used >= hour_limit:
        next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        return RateLimitStatus(
            allowed=False,
            backoff_ms=max(1, int((next_hour - now).total_seconds() * 1000)),
            window="hour",
        )

    if day_limit is not None and day_used is not None and day_used >= day_limit:
        next_day = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        return RateLimitStatus(
            allowed=False,
            backoff_ms=max(1, int((next_day - now).total_seconds() * 1000)),
            window="day",
        )

    return RateLimitStatus()


def generate_slip_reference(today: Optional[date] = None) -> str:
    """Client-side document reference, e.g. 'S-20261019-042'."""
    today = today or datetime.now(KST).date()
    return f"S-{today:%Y%m%d}-{random.randint(0, 999):03d}"


def build_upload_payload(
    order: ParsedOrder,
    slip_reference: str,
    trace_id: str,
    io_date: Optional[date] = None,
) -> dict:
    """
    Convert an enriched order into the Ecount bulk upload shape.

    One BulkDatas entry per line. Every line shares UPLOAD_SER_NO so the
    vendor groups them into a single slip. Unmatched lines go in at price 0
    with the raw item name.

    Args:
        order: Order with matched items
        slip_reference: Client-side document reference
        trace_id: Trace id of this submission
        io_date: Document date, defaults to today (KST)

    Returns:
        Payload dict without SESSION_ID (added by the client)
    """
    io_date = io_date or datetime.now(KST).date()
    remark = f"{slip_reference} / {trace_id}"
    if order.note:
        remark = f"{order.note} ({remark})"

    lines = []
    for line in order.items:
        item = line.matched_item
        price = item.unit_price if item else 0.0
        bulk = {
            "UPLOAD_SER_NO": "1",
            "IO_DATE": f"{io_date:%Y%m%d}",
            "CUST": order.customer_code or "",
            "CUST_DES": order.customer_name,
            "PROD_CD": item.code if item else "",
            "PROD_DES": item.name if item else line.item_name_raw,
            "QTY": str(line.quantity),
            "PRICE": _format_amount(price),
            "SUPPLY_AMT": _format_amount(price * line.quantity),
            "REMARKS": remark,
        }
        lines.append({"BulkDatas": bulk})

    return {
        UPLOAD_LIST_KEYS[order.order_type]: lines,
        "TRACE_ID": trace_id,
    }


def _format_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"

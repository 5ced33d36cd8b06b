"""Tests for Ecount request/response mapping."""

import json
from datetime import date, datetime, timezone

import pytest

from conftest import make_order
from ecount_intake.erp_payload import (
    build_upload_payload,
    check_rate_limit,
    extract_session_id,
    extract_slip_nos,
    generate_slip_reference,
    normalize_vendor_item,
    parse_search_results,
    upload_succeeded,
    vendor_error,
)
from ecount_intake.models import OrderType


# 12:30 KST
NOON_THIRTY = datetime(2026, 10, 19, 3, 30, tzinfo=timezone.utc)


class TestVendorItems:

    def test_field_precedence(self):
        raw = {
            "PROD_CD": "X-1", "code": "ignored",
            "PROD_DES": "정식명", "PROD_NM": "약칭", "name": "other",
            "OUT_PRICE": "1,200", "PRICE": 5,
            "UNIT": "BOX", "unit": "EA",
        }

        item = normalize_vendor_item(raw)

        assert (item.code, item.name, item.unit_price, item.unit) == ("X-1", "정식명", 1200.0, "BOX")

    def test_fallback_fields(self):
        item = normalize_vendor_item({"code": "Y-1", "PROD_NM": "약칭", "price": "n/a"})

        assert (item.code, item.name, item.unit_price, item.unit) == ("Y-1", "약칭", 0.0, "EA")

    def test_record_without_code_is_dropped(self):
        assert normalize_vendor_item({"PROD_DES": "no code"}) is None
        assert normalize_vendor_item("not a record") is None

    def test_result_as_json_string(self):
        data = {"Data": {"Result": json.dumps([
            {"PROD_CD": "A-001", "PROD_DES": "깐쇼새우 1kg", "OUT_PRICE": 5000},
            {"PROD_DES": "no code"},
        ], ensure_ascii=False)}}

        items = parse_search_results(data)

        assert [i.code for i in items] == ["A-001"]

    def test_top_level_result(self):
        items = parse_search_results({"Result": [{"code": "Z-9", "name": "z", "price": 10}]})

        assert items[0].unit_price == 10.0

    @pytest.mark.parametrize("data", [{"Data": {"Result": "not json"}}, {}, None, {"Result": None}])
    def test_unusable_results_are_empty(self, data):
        assert parse_search_results(data) == []


class TestResponseFields:

    def test_session_id_locations(self):
        assert extract_session_id({"session_id": "a"}) == "a"
        assert extract_session_id({"Data": {"Datas": {"SESSION_ID": "b"}}}) == "b"
        assert extract_session_id({"Data": {}}) is None

    def test_vendor_error_from_errors_list(self):
        data = {"Errors": [{"Code": "V01", "Message": "필수값 누락"}]}

        assert vendor_error(data) == ("필수값 누락", "V01")

    def test_vendor_error_plain_message(self):
        assert vendor_error({"message": "boom"}) == ("boom", None)
        assert vendor_error("<html>") == (None, None)

    def test_slip_nos(self):
        assert extract_slip_nos({"Data": {"SlipNos": ["1", "2"]}}) == ["1", "2"]
        assert extract_slip_nos({"SLIP_NOS": "20261019-3"}) == ["20261019-3"]
        assert extract_slip_nos({}) == []

    @pytest.mark.parametrize("data,expected", [
        ({"Status": "200", "Data": {"FailCnt": 0, "SlipNos": ["1"]}}, True),
        ({"SLIP_NOS": ["1"]}, True),
        ({"Status": "500", "Data": {"SlipNos": ["1"]}}, False),
        ({"Status": "200", "Error": {"Message": "x"}, "Data": {"SlipNos": ["1"]}}, False),
        ({"Status": "200", "Data": {"FailCnt": 1, "SlipNos": ["1"]}}, False),
        ({"Status": "200", "Data": {"FailCnt": 0}}, False),
    ])
    def test_upload_succeeded(self, data, expected):
        assert upload_succeeded(data) is expected


class TestRateLimit:

    def test_no_info_is_allowed(self):
        assert check_rate_limit(None).allowed is True

    def test_within_limits(self):
        info = {"HOUR_LIMIT": 100, "HOUR_USED": 10, "DAY_LIMIT": 1000, "DAY_USED": 10}

        assert check_rate_limit(info, NOON_THIRTY).allowed is True

    def test_hour_window_backs_off_to_next_hour(self):
        status = check_rate_limit({"HOUR_LIMIT": 100, "HOUR_USED": 120}, NOON_THIRTY)

        assert (status.allowed, status.window, status.backoff_ms) == (False, "hour", 30 * 60 * 1000)

    def test_day_window_backs_off_to_kst_midnight(self):
        # 23:00 KST
        now = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)

        status = check_rate_limit({"DAY_LIMIT": "1000", "DAY_USED": "1000"}, now)

        assert (status.window, status.backoff_ms) == ("day", 60 * 60 * 1000)

    def test_hour_window_checked_first(self):
        info = {"HOUR_LIMIT": 1, "HOUR_USED": 1, "DAY_LIMIT": 1, "DAY_USED": 1}

        assert check_rate_limit(info, NOON_THIRTY).window == "hour"


class TestUploadPayload:

    def test_sale_payload(self):
        order = make_order(("A-001", 100), ("연어", 2), customer="ABC상사")

        payload = build_upload_payload(order, "S-20261019-001", "trace-1", io_date=date(2026, 10, 19))

        assert payload["TRACE_ID"] == "trace-1"
        lines = [entry["BulkDatas"] for entry in payload["SaleList"]]
        assert {line["UPLOAD_SER_NO"] for line in lines} == {"1"}
        assert lines[0]["PROD_CD"] == "A-001"
        assert lines[0]["SUPPLY_AMT"] == "500000"
        assert lines[0]["REMARKS"] == "S-20261019-001 / trace-1"
        assert (lines[1]["PROD_CD"], lines[1]["PROD_DES"], lines[1]["PRICE"]) == ("", "연어", "0")

    def test_sales_order_list_key(self):
        order = make_order(("A-001", 1), order_type=OrderType.ORDER)

        payload = build_upload_payload(order, "S-1", "t")

        assert "SaleOrderList" in payload
        assert "SaleList" not in payload

    def test_note_goes_in_remarks(self):
        order = make_order(("A-001", 1), note="오전 배송")

        payload = build_upload_payload(order, "S-1", "t")

        assert payload["SaleList"][0]["BulkDatas"]["REMARKS"] == "오전 배송 (S-1 / t)"

    def test_slip_reference_format(self):
        reference = generate_slip_reference(date(2026, 10, 19))

        assert reference.startswith("S-20261019-")
        assert len(reference) == len("S-20261019-000")

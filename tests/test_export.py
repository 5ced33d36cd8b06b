"""Tests for the Ecount upload sheet export."""

from io import BytesIO

from openpyxl import load_workbook

from conftest import make_order
from ecount_intake.services.export import UPLOAD_SHEET_HEADERS, build_upload_rows, export_order_workbook


class TestUploadRows:

    def test_amounts_include_vat(self):
        [row] = build_upload_rows(make_order(("A-001", 100), customer="ABC상사"))

        assert row == ["", "ABC상사", "A-001", "깐쇼새우 1kg", 100, 5000, 500000, 50000, 550000, ""]

    def test_vat_rounds_half_up(self):
        order = make_order(("A-001", 1))
        cheap = order.items[0].matched_item.model_copy(update={"unit_price": 5})
        order.items[0] = order.items[0].model_copy(update={"matched_item": cheap})

        [row] = build_upload_rows(order)

        assert row[7] == 1

    def test_unmatched_line_is_flagged(self):
        [row] = build_upload_rows(make_order(("연어", 2)))

        assert row[2:7] == ["", "연어", 2, 0.0, 0.0]
        assert row[9] == "미매칭 품목"


class TestWorkbook:

    def test_workbook_layout(self):
        content = export_order_workbook(make_order(("A-001", 100), ("A-002", 50)))

        sheet = load_workbook(BytesIO(content)).active
        rows = list(sheet.iter_rows(values_only=True))
        assert sheet.title == "판매입력"
        assert list(rows[0]) == UPLOAD_SHEET_HEADERS
        assert len(rows) == 3
        assert rows[2][3] == "새우볼 500g"
        assert sheet["A1"].font.bold is True

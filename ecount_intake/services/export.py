"""Ecount sales upload sheet (.xlsx) export."""

from __future__ import annotations
import math
from io import BytesIO
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from ..models import ParsedOrder


VAT_RATE = 0.1

UPLOAD_SHEET_HEADERS = [
    "거래처코드",
    "거래처명",
    "품목코드",
    "품목명",
    "수량",
    "단가",
    "공급가액",
    "부가세",
    "합계금액",
    "비고",
]


def build_upload_rows(order: ParsedOrder) -> list[list]:
    """One row per order line, amounts with 10% VAT (half-up to whole won)."""
    rows = []
    for line in order.items:
        item = line.matched_item
        unit_price = item.unit_price if item else 0.0
        supply_amount = unit_price * line.quantity
        vat_amount = math.floor(supply_amount * VAT_RATE + 0.5)
        rows.append([
            order.customer_code or "",
            order.customer_name,
            item.code if item else "",
            item.name if item else line.item_name_raw,
            line.quantity,
            unit_price,
            supply_amount,
            vat_amount,
            supply_amount + vat_amount,
            "" if item else "미매칭 품목",
        ])
    return rows


def export_order_workbook(order: ParsedOrder, sheet_title: Optional[str] = None) -> bytes:
    """Write the order as an Ecount upload workbook and return the file bytes."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title or "판매입력"

    sheet.append(UPLOAD_SHEET_HEADERS)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in build_upload_rows(order):
        sheet.append(row)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()

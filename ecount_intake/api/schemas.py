"""Pydantic schemas for API requests and responses."""

from typing import Optional
from pydantic import BaseModel, Field

from ..models import MatchedItem, ParsedOrder


# Request schemas
class ParseRequest(BaseModel):
    """Free-text order to parse."""
    text: str


class SubmitRequest(BaseModel):
    """A confirmed order, as returned by /orders/parse and possibly edited."""
    order: ParsedOrder
    raw_text: Optional[str] = None


class ExportRequest(BaseModel):
    order: ParsedOrder


class ConnectionTestRequest(BaseModel):
    """Account to test. Omitted fields fall back to the stored connection."""
    company_code: Optional[str] = None
    user_id: Optional[str] = None


# Response schemas
class ParseResponse(BaseModel):
    """Parsed and matched order awaiting confirmation."""
    trace_id: str
    order: ParsedOrder
    total_amount: float
    unmatched_items: list[str]


class ItemSearchResponse(BaseModel):
    items: list[MatchedItem]
    total: int


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderStatistics(BaseModel):
    total: int
    success: int
    failed: int
    pending: int
    success_rate: float = Field(description="Percent of successful submissions, one decimal")


class OrderLogResponse(BaseModel):
    id: int
    trace_id: Optional[str] = None
    raw_text: Optional[str] = None
    parsed_data: Optional[dict] = None
    erp_response: Optional[dict] = None
    status: str
    error_message: Optional[str] = None
    document_id: Optional[str] = None
    total_amount: float = 0.0
    created_at: Optional[str] = None


class OrderLogsResponse(BaseModel):
    logs: list[OrderLogResponse]
    pagination: Pagination
    statistics: OrderStatistics

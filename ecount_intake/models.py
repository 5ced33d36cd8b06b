"""Data models for order parsing, matching and ERP submission."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


UNSPECIFIED_CUSTOMER = "미지정"


class OrderType(str, Enum):
    SALE = "sale"
    ORDER = "order"


class MatchedItem(BaseModel):
    """A catalog entry chosen as the interpretation of a free-text item name."""

    code: str = Field(description="ERP item code (PROD_CD)")
    name: str = Field(description="Catalog item name")
    unit_price: float = Field(default=0.0, ge=0.0, description="Outbound unit price")
    unit: str = Field(default="EA", description="Unit of measurement")


class OrderLineDraft(BaseModel):
    """A single order line before submission."""

    item_name_raw: str = Field(description="Item name as written by the user")
    quantity: int = Field(gt=0, description="Quantity ordered")
    matched_item: Optional[MatchedItem] = Field(default=None, description="Best catalog match, if any")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Match score")

    @property
    def line_amount(self) -> float:
        if self.matched_item is None:
            return 0.0
        return self.matched_item.unit_price * self.quantity


class ParsedOrder(BaseModel):
    """Structured order extracted from natural-language text."""

    customer_name: str = Field(default=UNSPECIFIED_CUSTOMER, description="Customer (거래처) name")
    customer_code: Optional[str] = Field(default=None, description="ERP customer code, if known")
    items: list[OrderLineDraft] = Field(min_length=1, description="Order lines")
    order_type: OrderType = Field(default=OrderType.SALE)
    note: Optional[str] = Field(default=None)

    @property
    def total_amount(self) -> float:
        return sum(line.line_amount for line in self.items)

    @property
    def unmatched_items(self) -> list[str]:
        return [line.item_name_raw for line in self.items if line.matched_item is None]


class ErpSession(BaseModel):
    """A vendor session token cached per (company_code, user_id)."""

    company_code: str
    user_id: str
    session_id: str
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at


class AuditLogEntry(BaseModel):
    """One external call attempt. Secrets must already be masked."""

    trace_id: str
    endpoint: str
    request_summary: dict[str, Any] = Field(default_factory=dict)
    response_summary: dict[str, Any] = Field(default_factory=dict)
    status_code: Optional[int] = None
    duration_ms: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RateLimitStatus(BaseModel):
    """Advisory quota state reported by the ERP."""

    allowed: bool = True
    backoff_ms: int = 0
    window: Optional[str] = Field(default=None, description="'hour' or 'day' when exhausted")


class SubmitResult(BaseModel):
    """Result of uploading a sales document."""

    success: bool
    document_id: Optional[str] = None
    slip_nos: list[str] = Field(default_factory=list)
    trace_id: str
    total_amount: float = 0.0
    items_count: int = 0
    unmatched_items: list[str] = Field(default_factory=list)
    rate_limit: RateLimitStatus = Field(default_factory=RateLimitStatus)
    relogin: bool = Field(default=False, description="Whether a stale session was replaced mid-call")


class ConnectionTestResult(BaseModel):
    """Result of checking stored ERP credentials against the vendor."""

    success: bool
    status: str = Field(description="'connected' or 'error'")
    trace_id: str
    masked_api_key_suffix: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    http_status: Optional[int] = None

"""Services package."""

from .audit import (
    AuditLogger,
    AuditSink,
    InMemoryAuditSink,
    mask_payload,
    mask_secret,
    new_trace_id,
)
from .export import export_order_workbook, build_upload_rows, UPLOAD_SHEET_HEADERS
from .product_matching import ItemMatcher, MatchResult, MOCK_CATALOG, levenshtein_similarity
from .retry import RetryPolicy, NO_RETRY
from .session_store import SessionStore, InMemorySessionStore

__all__ = [
    # Audit
    "AuditLogger",
    "AuditSink",
    "InMemoryAuditSink",
    "mask_payload",
    "mask_secret",
    "new_trace_id",
    # Export
    "export_order_workbook",
    "build_upload_rows",
    "UPLOAD_SHEET_HEADERS",
    # Matching
    "ItemMatcher",
    "MatchResult",
    "MOCK_CATALOG",
    "levenshtein_similarity",
    # Retry
    "RetryPolicy",
    "NO_RETRY",
    # Sessions
    "SessionStore",
    "InMemorySessionStore",
]

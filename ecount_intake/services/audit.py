"""Audit trail of external calls, with secret masking."""

from __future__ import annotations
import time
import uuid
from typing import Any, Optional, Protocol

from loguru import logger

from ..models import AuditLogEntry


VISIBLE_SUFFIX = 4
MASK = "****"

# Keys whose values are masked wherever they appear in a summary.
SECRET_KEYS = frozenset({
    "api_key", "user_id", "session_id", "SESSION_ID", "USER_ID", "API_KEY",
    "user_pwd", "password", "authorization",
})


def new_trace_id() -> str:
    return str(uuid.uuid4())


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Keep only the last four characters: 'abcdef1234' -> '****1234'."""
    if value is None:
        return None
    value = str(value)
    if len(value) <= VISIBLE_SUFFIX:
        return MASK
    return MASK + value[-VISIBLE_SUFFIX:]


def mask_payload(data: Any) -> Any:
    """Recursively mask secret values in a dict/list summary."""
    if isinstance(data, dict):
        return {
            key: mask_secret(value) if key in SECRET_KEYS and value is not None else mask_payload(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [mask_payload(item) for item in data]
    return data


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class AuditSink(Protocol):
    """Persistence for audit entries."""

    async def write(self, entry: AuditLogEntry) -> None: ...


class InMemoryAuditSink:
    """Keeps entries in a list. Used by tests and the CLI."""

    def __init__(self):
        self.entries: list[AuditLogEntry] = []

    async def write(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def for_trace(self, trace_id: str) -> list[AuditLogEntry]:
        return [e for e in self.entries if e.trace_id == trace_id]


class AuditLogger:
    """Records audit entries without ever failing the calling operation."""

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or InMemoryAuditSink()

    async def record(self, entry: AuditLogEntry) -> None:
        entry = entry.model_copy(update={
            "request_summary": mask_payload(entry.request_summary),
            "response_summary": mask_payload(entry.response_summary),
        })
        try:
            await self.sink.write(entry)
        except Exception as exc:
            logger.error("Failed to persist audit entry {} for {}: {}",
                         entry.trace_id, entry.endpoint, exc)

    async def call(
        self,
        trace_id: str,
        endpoint: str,
        started: float,
        request_summary: Optional[dict] = None,
        response_summary: Optional[dict] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Shortcut that builds and records an entry timed from ``started``."""
        await self.record(AuditLogEntry(
            trace_id=trace_id,
            endpoint=endpoint,
            request_summary=request_summary or {},
            response_summary=response_summary or {},
            status_code=status_code,
            duration_ms=elapsed_ms(started),
        ))

"""SQL-backed stores for sessions, audit entries, credentials and order logs."""

import math
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import EcountCredentials
from ..models import AuditLogEntry, ConnectionTestResult, ErpSession, ParsedOrder, SubmitResult
from .models import EcountConnection, EcountLog, EcountSessionRow, OrderLog, Organization


ORDER_STATUSES = ("success", "failed", "pending")


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlSessionStore:
    """Session cache in the ecount_sessions table, upserted on (company_code, user_id)."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _find(self, db: AsyncSession, company_code: str, user_id: str) -> Optional[EcountSessionRow]:
        result = await db.execute(
            select(EcountSessionRow).where(
                EcountSessionRow.company_code == company_code,
                EcountSessionRow.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, company_code: str, user_id: str) -> Optional[ErpSession]:
        async with self.session_factory() as db:
            row = await self._find(db, company_code, user_id)
            if row is None:
                return None
            return ErpSession(
                company_code=row.company_code,
                user_id=row.user_id,
                session_id=row.session_id,
                expires_at=_as_utc(row.expires_at),
            )

    async def put(self, session: ErpSession) -> None:
        async with self.session_factory() as db:
            row = await self._find(db, session.company_code, session.user_id)
            if row is None:
                row = EcountSessionRow(company_code=session.company_code, user_id=session.user_id)
                db.add(row)
            row.session_id = session.session_id
            row.expires_at = _as_utc(session.expires_at)
            await db.commit()

    async def delete(self, company_code: str, user_id: str) -> None:
        async with self.session_factory() as db:
            row = await self._find(db, company_code, user_id)
            if row is not None:
                await db.delete(row)
                await db.commit()


class SqlAuditSink:
    """Writes audit entries to the ecount_logs table."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def write(self, entry: AuditLogEntry) -> None:
        async with self.session_factory() as db:
            data = entry.model_dump(mode="json")
            db.add(EcountLog(
                trace_id=entry.trace_id,
                endpoint=entry.endpoint,
                request_summary=data["request_summary"],
                response_summary=data["response_summary"],
                status_code=entry.status_code,
                duration_ms=entry.duration_ms,
                created_at=entry.created_at,
            ))
            await db.commit()


class SqlCredentialsStore:
    """
    Resolves an organization's Ecount credentials.

    Company code and user id come from the organization's connection row; the
    API key is a server secret and never stored in the database.
    """

    def __init__(self, db: AsyncSession, api_key: Optional[str]):
        self.db = db
        self.api_key = api_key

    async def get(self, org_id: int) -> EcountCredentials:
        result = await self.db.execute(
            select(EcountConnection).where(EcountConnection.org_id == org_id)
        )
        connection = result.scalar_one_or_none()
        if connection is None:
            return EcountCredentials(None, None, self.api_key)
        return EcountCredentials(connection.company_code, connection.ecount_user_id, self.api_key)


class ConnectionRepository:
    """Keeps the organization's connection status in step with the last test."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_status(
        self,
        org_id: int,
        company_code: str,
        user_id: str,
        result: ConnectionTestResult,
    ) -> EcountConnection:
        found = await self.db.execute(
            select(EcountConnection).where(EcountConnection.org_id == org_id)
        )
        connection = found.scalar_one_or_none()
        if connection is None:
            connection = EcountConnection(org_id=org_id)
            self.db.add(connection)

        connection.company_code = company_code
        connection.ecount_user_id = user_id
        connection.status = result.status
        connection.masked_api_key_suffix = result.masked_api_key_suffix
        connection.last_error = result.error
        connection.last_tested_at = datetime.now(timezone.utc)
        await self.db.commit()
        return connection


class OrderLogRepository:
    """Order submission history per organization."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(
        self,
        org_id: Optional[int],
        order: ParsedOrder,
        raw_text: Optional[str] = None,
        result: Optional[SubmitResult] = None,
        error: Optional[dict[str, Any]] = None,
    ) -> OrderLog:
        """Record a submission. Pass ``result`` on success or ``error`` on failure."""
        if result is not None:
            status = "success"
        elif error is not None:
            status = "failed"
        else:
            status = "pending"

        log = OrderLog(
            org_id=org_id,
            trace_id=(result.trace_id if result else (error or {}).get("trace_id")),
            raw_text=raw_text,
            parsed_data=order.model_dump(mode="json"),
            erp_response=result.model_dump(mode="json") if result else error,
            status=status,
            error_message=(error or {}).get("error"),
            document_id=result.document_id if result else None,
            total_amount=order.total_amount,
        )
        self.db.add(log)
        await self.db.commit()
        return log

    async def list_logs(
        self,
        org_id: Optional[int],
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> dict:
        """
        Page through an organization's order logs, newest first.

        Args:
            org_id: Organization to list
            page: 1-based page number
            limit: Page size
            status: Optional filter (success, failed, pending)

        Returns:
            Dict with ``logs``, ``pagination`` and ``statistics``. Statistics
            always cover every log of the organization, ignoring the filter.
        """
        page = max(page, 1)
        limit = max(limit, 1)

        query = select(OrderLog).where(OrderLog.org_id == org_id)
        count_query = select(func.count(OrderLog.id)).where(OrderLog.org_id == org_id)
        if status:
            query = query.where(OrderLog.status == status)
            count_query = count_query.where(OrderLog.status == status)

        query = query.order_by(OrderLog.created_at.desc(), OrderLog.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)

        logs = (await self.db.execute(query)).scalars().all()
        total = (await self.db.execute(count_query)).scalar_one()

        return {
            "logs": [self._to_dict(log) for log in logs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit),
            },
            "statistics": await self.statistics(org_id),
        }

    async def statistics(self, org_id: Optional[int]) -> dict:
        result = await self.db.execute(
            select(OrderLog.status, func.count(OrderLog.id))
            .where(OrderLog.org_id == org_id)
            .group_by(OrderLog.status)
        )
        counts = {status: count for status, count in result.all()}
        total = sum(counts.values())
        success = counts.get("success", 0)
        # Percentage rounded half-up to one decimal
        success_rate = math.floor(success / total * 1000 + 0.5) / 10 if total else 0

        stats = {"total": total}
        for status in ORDER_STATUSES:
            stats[status] = counts.get(status, 0)
        stats["success_rate"] = success_rate
        return stats

    @staticmethod
    def _to_dict(log: OrderLog) -> dict:
        return {
            "id": log.id,
            "trace_id": log.trace_id,
            "raw_text": log.raw_text,
            "parsed_data": log.parsed_data,
            "erp_response": log.erp_response,
            "status": log.status,
            "error_message": log.error_message,
            "document_id": log.document_id,
            "total_amount": log.total_amount,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }


async def get_or_create_organization(db: AsyncSession, org_id: int, name: str = "Default") -> Organization:
    organization = await db.get(Organization, org_id)
    if organization is None:
        organization = Organization(id=org_id, name=name)
        db.add(organization)
        await db.commit()
    return organization

"""FastAPI route definitions."""

from functools import lru_cache
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Response
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..db import (
    AsyncSessionLocal,
    ConnectionRepository,
    OrderLogRepository,
    SqlAuditSink,
    SqlCredentialsStore,
    SqlSessionStore,
    get_db,
    get_or_create_organization,
)
from ..db.seed import DEMO_ORG_ID
from ..errors import IntakeError
from ..models import ConnectionTestResult, SubmitResult
from ..processor import OrderPipeline
from ..services.audit import new_trace_id
from ..services.export import export_order_workbook
from .schemas import (
    ConnectionTestRequest,
    ExportRequest,
    ItemSearchResponse,
    OrderLogsResponse,
    ParseRequest,
    ParseResponse,
    SubmitRequest,
)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_shared_pipeline: Optional[OrderPipeline] = None


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_shared_pipeline() -> OrderPipeline:
    """Process-wide pipeline: one HTTP client, one session cache, one audit sink."""
    global _shared_pipeline
    if _shared_pipeline is None:
        _shared_pipeline = OrderPipeline.from_settings(
            get_settings(),
            session_store=SqlSessionStore(AsyncSessionLocal),
            audit_sink=SqlAuditSink(AsyncSessionLocal),
        )
    return _shared_pipeline


async def close_shared_pipeline() -> None:
    global _shared_pipeline
    if _shared_pipeline is not None:
        await _shared_pipeline.aclose()
        _shared_pipeline = None


def get_org_id(x_organization_id: int = Header(default=DEMO_ORG_ID)) -> int:
    return x_organization_id


async def get_pipeline(
    org_id: int = Depends(get_org_id),
    db: AsyncSession = Depends(get_db),
) -> OrderPipeline:
    """Pipeline acting with the organization's Ecount account."""
    shared = get_shared_pipeline()
    credentials = await SqlCredentialsStore(db, get_settings().ecount.api_key).get(org_id)
    if not credentials.company_code or not credentials.user_id:
        # No connection saved yet: use the account from the environment.
        return shared
    return shared.for_credentials(credentials)


@router.post("/orders/parse", response_model=ParseResponse)
async def parse_order(
    request: ParseRequest,
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """Parse free text into an order and match its items against the catalog."""
    trace_id = new_trace_id()
    order = await pipeline.parse_order_text(request.text, trace_id=trace_id)
    return ParseResponse(
        trace_id=trace_id,
        order=order,
        total_amount=order.total_amount,
        unmatched_items=order.unmatched_items,
    )


@router.get("/items/search", response_model=ItemSearchResponse)
async def search_items(
    keyword: str = Query(default=""),
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """Search the ERP item master."""
    items = await pipeline.search_catalog(keyword)
    return ItemSearchResponse(items=items, total=len(items))


@router.post("/orders/submit", response_model=SubmitResult)
async def submit_order(
    request: SubmitRequest,
    org_id: int = Depends(get_org_id),
    db: AsyncSession = Depends(get_db),
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """Upload a confirmed order to Ecount and log the outcome."""
    try:
        result = await pipeline.submit_order(request.order)
    except IntakeError as e:
        await _log_submission(db, org_id, request, error=e.to_dict())
        raise
    await _log_submission(db, org_id, request, result=result)
    return result


async def _log_submission(
    db: AsyncSession,
    org_id: int,
    request: SubmitRequest,
    result: Optional[SubmitResult] = None,
    error: Optional[dict] = None,
) -> None:
    # The upload outcome stands even when the order log cannot be written.
    try:
        await OrderLogRepository(db).add(org_id, request.order, raw_text=request.raw_text, result=result, error=error)
    except Exception as exc:
        logger.error("Failed to write order log for org {}: {}", org_id, exc)


@router.post("/orders/export")
async def export_order(request: ExportRequest):
    """Download the order as an Ecount sales upload sheet."""
    content = export_order_workbook(request.order)
    filename = quote(f"이카운트_판매입력_{request.order.customer_name}.xlsx")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{filename}"},
    )


@router.post("/ecount/connection-test", response_model=ConnectionTestResult)
async def connection_test(
    request: ConnectionTestRequest,
    org_id: int = Depends(get_org_id),
    db: AsyncSession = Depends(get_db),
    pipeline: OrderPipeline = Depends(get_pipeline),
):
    """Log in with the organization's account and save the connection status."""
    company_code = request.company_code or pipeline.credentials.company_code
    user_id = request.user_id or pipeline.credentials.user_id

    async def save_status(result: ConnectionTestResult) -> None:
        await get_or_create_organization(db, org_id)
        await ConnectionRepository(db).upsert_status(org_id, company_code, user_id, result)

    result = await pipeline.test_connection(company_code, user_id, on_result=save_status)
    logger.info("Connection test for org {}: {}", org_id, result.status)
    return result


@router.get("/orders/logs", response_model=OrderLogsResponse)
async def list_order_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = Query(default=None, pattern="^(success|failed|pending)$"),
    org_id: int = Depends(get_org_id),
    db: AsyncSession = Depends(get_db),
):
    """List submitted orders with pagination and success statistics."""
    return await OrderLogRepository(db).list_logs(org_id, page=page, limit=limit, status=status)

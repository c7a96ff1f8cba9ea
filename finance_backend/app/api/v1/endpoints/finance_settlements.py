"""
Finance Settlement API Endpoints.

Settlement creation, batch generation, processing and lookups.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.dependencies import get_settlement_service, get_statistics_service
from finance_backend.app.core.guards import require_finance_operator, require_finance_reader
from finance_backend.app.models.finance_enums import SettlementStatus, SettlementType
from finance_backend.app.domain.finance.settlement_service import SettlementService
from finance_backend.app.schemas.analytics import SettlementSummary
from finance_backend.app.schemas.finance import (
    BatchItemResponse, Page, SettlementCreate, SettlementDetailResponse,
    SettlementGenerate, SettlementGenerationResponse, SettlementResponse,
)
from finance_backend.app.services import ledger_queries
from finance_backend.app.services.statistics import StatisticsService

router = APIRouter(prefix="/admin/finance/settlements", tags=["Admin - Settlements"])


@router.get("", response_model=Page[SettlementResponse])
async def list_settlements(
    type: Optional[SettlementType] = Query(None),
    target_id: Optional[int] = Query(None),
    status_filter: Optional[SettlementStatus] = Query(None, alias="status"),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_admin: dict = Depends(require_finance_reader),
    service: SettlementService = Depends(get_settlement_service),
    db: AsyncSession = Depends(get_db)
):
    items, total = await service.list_settlements(
        db,
        settlement_type=type,
        target_id=target_id,
        status=status_filter,
        period_start=period_start,
        period_end=period_end,
        page=page,
        page_size=page_size,
    )
    return Page[SettlementResponse](
        items=[SettlementResponse.model_validate(s) for s in items],
        total=total, page=page, page_size=page_size,
    )


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    payload: SettlementCreate,
    current_admin: dict = Depends(require_finance_operator),
    service: SettlementService = Depends(get_settlement_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a PENDING settlement for one merchant or distributor.

    Returns 409 when a settlement already exists for the same period.
    """
    return await service.create_settlement(
        db,
        payload.type,
        payload.target_id,
        payload.period_start,
        payload.period_end,
        operator_id=current_admin["admin_id"],
    )


@router.get("/summary", response_model=SettlementSummary)
async def get_settlement_summary(
    type: Optional[SettlementType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    return await statistics.get_settlement_summary(db, type, start, end)


@router.post("/generate", response_model=SettlementGenerationResponse)
async def generate_settlements(
    payload: SettlementGenerate,
    current_admin: dict = Depends(require_finance_operator),
    service: SettlementService = Depends(get_settlement_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Generate settlements for every eligible target of a type.

    Targets that already have a settlement or have nothing to settle are
    skipped; failures are reported per target.
    """
    report = await service.generate_settlements(
        db, payload.type, payload.period_start, payload.period_end,
        operator_id=current_admin["admin_id"],
    )
    return SettlementGenerationResponse(
        created=[SettlementResponse.model_validate(s) for s in report.created],
        skipped=[BatchItemResponse.model_validate(item) for item in report.skipped],
        failed=[BatchItemResponse.model_validate(item) for item in report.failed],
    )


@router.get("/{settlement_id}", response_model=SettlementDetailResponse)
async def get_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    current_admin: dict = Depends(require_finance_reader),
    service: SettlementService = Depends(get_settlement_service),
    db: AsyncSession = Depends(get_db)
):
    detail = await service.get_settlement_detail(db, settlement_id)
    response = SettlementDetailResponse.model_validate(detail.settlement)
    response.target_name = detail.target_name
    return response


@router.post("/{settlement_id}/process", response_model=SettlementResponse)
async def process_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    current_admin: dict = Depends(require_finance_operator),
    service: SettlementService = Depends(get_settlement_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Pay out a PENDING settlement. Distributor settlements also settle the
    period's commissions and credit the distributor's available balance.
    """
    return await service.process_settlement(db, settlement_id, operator_id=current_admin["admin_id"])

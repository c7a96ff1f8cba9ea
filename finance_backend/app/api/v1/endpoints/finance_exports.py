"""
Finance Export API Endpoints.

CSV downloads of settlements, withdrawals, wallet transactions and revenue
reports.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.dependencies import get_export_service
from finance_backend.app.core.guards import require_finance_reader
from finance_backend.app.models.finance_enums import (
    SettlementStatus, SettlementType, WalletTransactionType, WithdrawalStatus, WithdrawalType,
)
from finance_backend.app.services import ledger_queries
from finance_backend.app.services.export import ExportService

router = APIRouter(prefix="/admin/finance/export", tags=["Admin - Finance Export"])


def csv_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/settlements")
async def export_settlements(
    type: Optional[SettlementType] = Query(None),
    target_id: Optional[int] = Query(None),
    status_filter: Optional[SettlementStatus] = Query(None, alias="status"),
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    exporter: ExportService = Depends(get_export_service),
    db: AsyncSession = Depends(get_db)
):
    content, filename = await exporter.export_settlements(
        db, type, target_id, status_filter, period_start, period_end
    )
    return csv_response(content, filename)


@router.get("/withdrawals")
async def export_withdrawals(
    user_id: Optional[int] = Query(None),
    type: Optional[WithdrawalType] = Query(None),
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    exporter: ExportService = Depends(get_export_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    content, filename = await exporter.export_withdrawals(db, user_id, type, status_filter, start, end)
    return csv_response(content, filename)


@router.get("/transactions")
async def export_transactions(
    user_id: Optional[int] = Query(None),
    type: Optional[WalletTransactionType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    exporter: ExportService = Depends(get_export_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    content, filename = await exporter.export_transactions(db, user_id, type, start, end)
    return csv_response(content, filename)


@router.get("/daily-revenue")
async def export_daily_revenue(
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_admin: dict = Depends(require_finance_reader),
    exporter: ExportService = Depends(get_export_service),
    db: AsyncSession = Depends(get_db)
):
    content, filename = await exporter.export_daily_revenue(db, start_date, end_date)
    return csv_response(content, filename)


@router.get("/merchant-settlement")
async def export_merchant_settlement(
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    exporter: ExportService = Depends(get_export_service),
    db: AsyncSession = Depends(get_db)
):
    content, filename = await exporter.export_merchant_settlement(db, period_start, period_end)
    return csv_response(content, filename)

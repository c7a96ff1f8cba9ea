"""
Finance Withdrawal API Endpoints.

Withdrawal review queue: listing, summary, single and batch audit actions.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.dependencies import get_withdrawal_audit_service
from finance_backend.app.core.guards import require_finance_operator, require_finance_reader
from finance_backend.app.models.finance_enums import WithdrawalStatus, WithdrawalType
from finance_backend.app.domain.finance.withdrawal_audit_service import WithdrawalAuditService
from finance_backend.app.schemas.analytics import WithdrawalSummary
from finance_backend.app.schemas.finance import (
    BatchItemResponse, BatchResponse, Page, WithdrawalAction,
    WithdrawalBatchHandle, WithdrawalHandle, WithdrawalResponse,
)
from finance_backend.app.services import ledger_queries

router = APIRouter(prefix="/admin/finance/withdrawals", tags=["Admin - Withdrawals"])


@router.get("", response_model=Page[WithdrawalResponse])
async def list_withdrawals(
    user_id: Optional[int] = Query(None),
    type: Optional[WithdrawalType] = Query(None),
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_admin: dict = Depends(require_finance_reader),
    service: WithdrawalAuditService = Depends(get_withdrawal_audit_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    items, total = await service.list_withdrawals(
        db,
        user_id=user_id,
        withdrawal_type=type,
        status=status_filter,
        start=start,
        end=end,
        page=page,
        page_size=page_size,
    )
    return Page[WithdrawalResponse](
        items=[WithdrawalResponse.model_validate(w) for w in items],
        total=total, page=page, page_size=page_size,
    )


@router.get("/summary", response_model=WithdrawalSummary)
async def get_withdrawal_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    service: WithdrawalAuditService = Depends(get_withdrawal_audit_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    return await service.get_withdrawal_summary(db, start, end)


@router.post("/batch", response_model=BatchResponse)
async def batch_handle_withdrawals(
    payload: WithdrawalBatchHandle,
    current_admin: dict = Depends(require_finance_operator),
    service: WithdrawalAuditService = Depends(get_withdrawal_audit_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply one audit action to several withdrawals.

    Each id is handled on its own; failures are reported per id and do not
    stop the batch.
    """
    operator_id = current_admin["admin_id"]
    if payload.action == WithdrawalAction.APPROVE:
        result = await service.batch_approve(db, payload.ids, operator_id)
    elif payload.action == WithdrawalAction.REJECT:
        result = await service.batch_reject(db, payload.ids, operator_id, payload.reason)
    else:
        result = await service.batch_complete(db, payload.ids, operator_id)

    return BatchResponse(
        items=[BatchItemResponse.model_validate(item) for item in result.items],
        succeeded=result.succeeded,
        failed=result.failed,
    )


@router.get("/{withdrawal_id}", response_model=WithdrawalResponse)
async def get_withdrawal(
    withdrawal_id: int = Path(..., description="Withdrawal ID"),
    current_admin: dict = Depends(require_finance_reader),
    service: WithdrawalAuditService = Depends(get_withdrawal_audit_service),
    db: AsyncSession = Depends(get_db)
):
    return await service.get_withdrawal(db, withdrawal_id)


@router.post("/{withdrawal_id}/handle", response_model=WithdrawalResponse)
async def handle_withdrawal(
    payload: WithdrawalHandle,
    withdrawal_id: int = Path(..., description="Withdrawal ID"),
    current_admin: dict = Depends(require_finance_operator),
    service: WithdrawalAuditService = Depends(get_withdrawal_audit_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a withdrawal through review: approve, reject (with reason),
    mark processing, or complete the payout.
    """
    operator_id = current_admin["admin_id"]
    if payload.action == WithdrawalAction.APPROVE:
        return await service.approve_withdrawal(db, withdrawal_id, operator_id)
    if payload.action == WithdrawalAction.REJECT:
        return await service.reject_withdrawal(db, withdrawal_id, operator_id, payload.reason)
    if payload.action == WithdrawalAction.PROCESS:
        return await service.process_withdrawal(db, withdrawal_id, operator_id)
    return await service.complete_withdrawal(db, withdrawal_id, operator_id)

"""
Audit logging service for finance operator actions.

Audit rows are added to the caller's session without committing, so they
land in the same transaction as the mutation they describe.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from finance_backend.app.models.audit_log import AuditLog


class FinanceAuditAction:
    """Standardized audit action constants."""
    SETTLEMENT_CREATED = "SETTLEMENT_CREATED"
    SETTLEMENT_PROCESSED = "SETTLEMENT_PROCESSED"

    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
    WITHDRAWAL_PROCESSING = "WITHDRAWAL_PROCESSING"
    WITHDRAWAL_COMPLETED = "WITHDRAWAL_COMPLETED"


async def record_event(
    db: AsyncSession,
    action: str,
    operator_id: Optional[int] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit row to the current unit of work.

    Args:
        db: Database session (committed by the caller's transaction)
        action: Action being performed (use FinanceAuditAction constants)
        operator_id: ID of admin performing the action
        target_type: "settlement" or "withdrawal"
        target_id: ID of the record acted upon
        metadata: Additional context as JSON

    Returns:
        The pending AuditLog instance
    """
    audit_log = AuditLog(
        operator_id=operator_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
    )
    db.add(audit_log)
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target_type: str,
    target_id: int,
) -> List[AuditLog]:
    """Audit rows for one record, oldest first."""
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.target_type == target_type, AuditLog.target_id == target_id)
        .order_by(AuditLog.id)
    )
    return list(result.scalars().all())

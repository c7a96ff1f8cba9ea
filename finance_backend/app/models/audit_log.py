"""
Audit Log Database Model.

Tracks operator actions on settlements and withdrawals.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for finance operator actions.

    Events logged:
    - SETTLEMENT_CREATED / SETTLEMENT_PROCESSED
    - WITHDRAWAL_APPROVED / WITHDRAWAL_REJECTED
    - WITHDRAWAL_PROCESSING / WITHDRAWAL_COMPLETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    operator_id = Column(Integer, index=True, nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What the action was performed on
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', operator={self.operator_id}, target={self.target_type}:{self.target_id})>"

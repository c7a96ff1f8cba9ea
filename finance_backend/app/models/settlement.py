"""
Settlement database model.

A computed payout batch for one merchant or distributor over an inclusive
date period.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import SettlementType, SettlementStatus


class Settlement(Base):
    """
    Settlement model.

    Follows a strict workflow: PENDING -> PROCESSING -> COMPLETED.
    At most one settlement exists per (type, target_id, period_start, period_end).
    """
    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint(
            "type", "target_id", "period_start", "period_end",
            name="uq_settlements_type_target_period",
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    settlement_no = Column(String(64), unique=True, nullable=False)

    # Target: merchants.id or distributors.id depending on type
    type = Column(Enum(SettlementType), nullable=False, index=True)
    target_id = Column(Integer, nullable=False, index=True)

    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    # Financials
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    fee = Column(Numeric(12, 2), nullable=False, default=0)
    actual_amount = Column(Numeric(12, 2), nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)

    status = Column(Enum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    operator_id = Column(Integer, ForeignKey("admins.id"), nullable=True)

    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Settlement(id={self.id}, no='{self.settlement_no}', status='{self.status.value}', amount={self.total_amount})>"

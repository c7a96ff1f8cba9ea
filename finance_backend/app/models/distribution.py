"""
Distributor and commission models.

A distributor's commission lives in three buckets: `available_commission`,
`frozen_commission` (reserved against pending withdrawals) and
`withdrawn_commission`. `total_commission` is the lifetime earning.
"""

from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, Numeric, CheckConstraint, String
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import DistributorStatus, CommissionStatus


class Distributor(Base):
    __tablename__ = "distributors"
    __table_args__ = (
        CheckConstraint("frozen_commission >= 0", name="ck_distributors_frozen_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    invite_code = Column(String(20), unique=True, nullable=True)
    status = Column(Enum(DistributorStatus), default=DistributorStatus.ACTIVE, nullable=False)

    total_commission = Column(Numeric(12, 2), nullable=False, default=0)
    available_commission = Column(Numeric(12, 2), nullable=False, default=0)
    frozen_commission = Column(Numeric(12, 2), nullable=False, default=0)
    withdrawn_commission = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Distributor(id={self.id}, available={self.available_commission}, frozen={self.frozen_commission})>"


class Commission(Base):
    """Per-order distributor earning. PENDING until swept into a settlement."""
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    distributor_id = Column(Integer, ForeignKey("distributors.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    order_amount = Column(Numeric(12, 2), nullable=False, default=0)
    rate = Column(Numeric(5, 4), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True)

    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

"""
Withdrawal database model.

A user's request to cash out wallet balance or distributor commission.
The requested `amount` is frozen when the request is created; the audit
workflow releases it back or pays it out.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import WithdrawalType, WithdrawalStatus, WithdrawTo


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    withdrawal_no = Column(String(64), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(WithdrawalType), nullable=False)

    # fee + actual_amount == amount
    amount = Column(Numeric(12, 2), nullable=False)
    fee = Column(Numeric(12, 2), nullable=False, default=0)
    actual_amount = Column(Numeric(12, 2), nullable=False)

    withdraw_to = Column(Enum(WithdrawTo), nullable=False)
    account_info = Column(Text, nullable=False)  # Encrypted, opaque to this module

    status = Column(Enum(WithdrawalStatus), default=WithdrawalStatus.PENDING, nullable=False, index=True)
    reject_reason = Column(String(255), nullable=True)
    operator_id = Column(Integer, ForeignKey("admins.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Withdrawal(id={self.id}, no='{self.withdrawal_no}', status='{self.status.value}', amount={self.amount})>"

"""
User, wallet and wallet ledger models.

The wallet holds three buckets: available `balance`, `frozen_balance`
reserved against pending withdrawals, and the running `total_withdrawn`.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, Numeric, CheckConstraint
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import WalletTransactionType


class User(Base):
    """Platform end user. Lookup-only for the finance module."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    nickname = Column(String(50), nullable=True)
    phone = Column(String(20), unique=True, index=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, nickname='{self.nickname}')>"


class UserWallet(Base):
    __tablename__ = "user_wallets"
    __table_args__ = (
        CheckConstraint("frozen_balance >= 0", name="ck_user_wallets_frozen_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    balance = Column(Numeric(12, 2), nullable=False, default=0)
    frozen_balance = Column(Numeric(12, 2), nullable=False, default=0)
    total_recharged = Column(Numeric(12, 2), nullable=False, default=0)
    total_withdrawn = Column(Numeric(12, 2), nullable=False, default=0)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<UserWallet(user_id={self.user_id}, balance={self.balance}, frozen={self.frozen_balance})>"


class WalletTransaction(Base):
    """
    Append-only wallet ledger record.

    Every movement of wallet money writes one row with the balance before and
    after the movement.
    """
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(WalletTransactionType), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    balance_before = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)

    order_no = Column(String(64), nullable=True)
    remark = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<WalletTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"

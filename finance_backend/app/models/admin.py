"""
Admin database model.

Back-office operators. Settlements, withdrawals and audit rows reference
the admin who acted on them.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import AdminRole


class Admin(Base):
    """Admin model for back-office authentication."""
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    real_name = Column(String(50), nullable=True)
    role = Column(Enum(AdminRole), default=AdminRole.OPERATOR, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Admin(id={self.id}, username='{self.username}', role='{self.role.value}')>"

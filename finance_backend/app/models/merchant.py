"""
Merchant, venue and device models.

A merchant owns venues; a venue hosts devices; rentals happen on devices.
This chain is how completed orders are attributed to a merchant.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.finance_enums import MerchantStatus


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    contact_name = Column(String(50), nullable=True)
    contact_phone = Column(String(20), nullable=True)

    # Platform share of merchant revenue, e.g. 0.1000 for 10%
    commission_rate = Column(Numeric(5, 4), nullable=False, default=0)
    settlement_type = Column(String(20), nullable=False, default="monthly")
    status = Column(Enum(MerchantStatus), default=MerchantStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Merchant(id={self.id}, name='{self.name}', rate={self.commission_rate})>"


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    merchant_id = Column(Integer, ForeignKey("merchants.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    address = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    device_no = Column(String(64), unique=True, nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(100), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

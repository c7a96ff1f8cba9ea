"""
Centralized Test Configuration.
"""

import itertools
from datetime import datetime
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from finance_backend.app.main import app
from finance_backend.app.db.session import get_db, Base
from finance_backend.app.core.clock import FixedClock
from finance_backend.app.core.dependencies import (
    get_dashboard_service, get_export_service, get_settlement_service,
    get_statistics_service, get_withdrawal_audit_service,
)
from finance_backend.app.core.jwt import create_access_token
from finance_backend.app.core.numbering import SequentialNumberGenerator
from finance_backend.app.domain.finance.settlement_service import SettlementService
from finance_backend.app.domain.finance.withdrawal_audit_service import WithdrawalAuditService
from finance_backend.app.models.admin import Admin
from finance_backend.app.models.distribution import Commission, Distributor
from finance_backend.app.models.finance_enums import (
    AdminRole, CommissionStatus, MerchantStatus, OrderStatus, OrderType,
    PaymentChannel, PaymentMethod, PaymentStatus, RefundStatus,
    WithdrawalStatus, WithdrawalType, WithdrawTo,
)
from finance_backend.app.models.merchant import Device, Merchant, Venue
from finance_backend.app.models.order import Order, Payment, Refund, Rental
from finance_backend.app.models.user import User, UserWallet
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.services.dashboard import DashboardService
from finance_backend.app.services.export import ExportService
from finance_backend.app.services.statistics import StatisticsService

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 2024-03-15 is a Friday; tests pin "now" here
NOW = datetime(2024, 3, 15, 10, 30, 0)


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def settlement_service(clock):
    return SettlementService(clock=clock, numbers=SequentialNumberGenerator())


@pytest.fixture
def withdrawal_service(clock):
    return WithdrawalAuditService(clock=clock)


@pytest.fixture
def statistics_service(clock, withdrawal_service):
    return StatisticsService(clock=clock, withdrawals=withdrawal_service)


@pytest.fixture
def dashboard_service(clock):
    return DashboardService(clock=clock)


@pytest.fixture
def export_service(clock, statistics_service):
    return ExportService(clock=clock, statistics=statistics_service)


@pytest.fixture(autouse=True)
def apply_overrides(settlement_service, withdrawal_service, statistics_service, dashboard_service, export_service):
    """Point the app at the test database and the clock-pinned services."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settlement_service] = lambda: settlement_service
    app.dependency_overrides[get_withdrawal_audit_service] = lambda: withdrawal_service
    app.dependency_overrides[get_statistics_service] = lambda: statistics_service
    app.dependency_overrides[get_dashboard_service] = lambda: dashboard_service
    app.dependency_overrides[get_export_service] = lambda: export_service
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


class FinanceFactory:
    """Builds committed rows for the finance tables."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = itertools.count(1)

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    async def admin(self, role=AdminRole.FINANCE, is_active=True, username=None):
        n = next(self._seq)
        return await self._save(Admin(
            username=username or f"admin{n}", real_name=f"Admin {n}", role=role, is_active=is_active,
        ))

    async def user(self, nickname="Alice", phone=None):
        n = next(self._seq)
        return await self._save(User(nickname=nickname, phone=phone or f"1380000{n:04d}"))

    async def wallet(self, user, balance="0", frozen="0"):
        return await self._save(UserWallet(
            user_id=user.id, balance=Decimal(balance), frozen_balance=Decimal(frozen),
        ))

    async def merchant(self, name="Lakeside Lockers", commission_rate="0.1000", status=MerchantStatus.ACTIVE):
        return await self._save(Merchant(
            name=name, commission_rate=Decimal(commission_rate), status=status,
        ))

    async def device(self, merchant):
        n = next(self._seq)
        venue = await self._save(Venue(merchant_id=merchant.id, name=f"Venue {n}"))
        return await self._save(Device(device_no=f"DEV{n:05d}", venue_id=venue.id))

    async def order(
        self, user, amount="0", order_type=OrderType.RENTAL, status=OrderStatus.COMPLETED,
        paid_at=None, completed_at=None, created_at=None,
    ):
        n = next(self._seq)
        amount = Decimal(amount)
        return await self._save(Order(
            order_no=f"OD{n:06d}",
            user_id=user.id,
            type=order_type,
            status=status,
            original_amount=amount,
            actual_amount=amount,
            paid_at=paid_at,
            completed_at=completed_at,
            created_at=created_at or paid_at or NOW,
        ))

    async def rental_order(self, user, device, amount, completed_at, status=OrderStatus.COMPLETED):
        """A rental order fulfilled on `device`."""
        order = await self.order(
            user, amount, OrderType.RENTAL, status, paid_at=completed_at, completed_at=completed_at,
        )
        await self._save(Rental(order_id=order.id, user_id=user.id, device_id=device.id))
        return order

    async def payment(
        self, order, amount, paid_at, channel=PaymentChannel.MINIPROGRAM,
        status=PaymentStatus.SUCCESS, method=PaymentMethod.WECHAT,
    ):
        n = next(self._seq)
        return await self._save(Payment(
            payment_no=f"PY{n:06d}",
            order_id=order.id,
            user_id=order.user_id,
            amount=Decimal(amount),
            payment_method=method,
            payment_channel=channel,
            status=status,
            paid_at=paid_at,
            created_at=paid_at or NOW,
        ))

    async def refund(self, payment, amount, refunded_at=None, status=RefundStatus.SUCCESS, created_at=None):
        n = next(self._seq)
        return await self._save(Refund(
            refund_no=f"RF{n:06d}",
            order_id=payment.order_id,
            payment_id=payment.id,
            user_id=payment.user_id,
            amount=Decimal(amount),
            status=status,
            refunded_at=refunded_at,
            created_at=created_at or refunded_at or NOW,
        ))

    async def distributor(self, user, available="0", frozen="0"):
        n = next(self._seq)
        return await self._save(Distributor(
            user_id=user.id,
            invite_code=f"INV{n:04d}",
            available_commission=Decimal(available),
            frozen_commission=Decimal(frozen),
        ))

    async def commission(self, distributor, order, amount, created_at, status=CommissionStatus.PENDING, settled_at=None):
        return await self._save(Commission(
            distributor_id=distributor.id,
            order_id=order.id,
            order_amount=order.actual_amount,
            rate=Decimal("0.1000"),
            amount=Decimal(amount),
            status=status,
            settled_at=settled_at,
            created_at=created_at,
        ))

    async def withdrawal(
        self, user, amount="100.00", fee="0.00", withdrawal_type=WithdrawalType.COMMISSION,
        status=WithdrawalStatus.PENDING, created_at=None, withdraw_to=WithdrawTo.WECHAT,
    ):
        n = next(self._seq)
        amount, fee = Decimal(amount), Decimal(fee)
        return await self._save(Withdrawal(
            withdrawal_no=f"WD{n:06d}",
            user_id=user.id,
            type=withdrawal_type,
            amount=amount,
            fee=fee,
            actual_amount=amount - fee,
            withdraw_to=withdraw_to,
            account_info="encrypted",
            status=status,
            created_at=created_at or NOW,
        ))


@pytest.fixture
def factory(db_session):
    return FinanceFactory(db_session)


@pytest.fixture
async def finance_admin(factory):
    return await factory.admin(role=AdminRole.FINANCE)


def token_for(admin) -> str:
    return create_access_token(data={"sub": admin.username, "admin_id": admin.id, "role": admin.role.value})


@pytest.fixture
def auth_headers(finance_admin):
    """Bearer headers for an active finance admin."""
    return {"Authorization": f"Bearer {token_for(finance_admin)}"}


@pytest.fixture
def token_factory():
    return token_for

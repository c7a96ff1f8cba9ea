"""
Ledger Query Layer.

Read-only aggregate queries over payments, refunds, commissions, orders,
settlements, withdrawals and the wallet ledger. Every function is a pure
projection: it never mutates state.

Time windows are half-open `[start, end)` datetimes; either bound may be
None. Report periods given as dates go through `period_bounds`, which turns
an inclusive date range into that half-open form. Per-day results are keyed
by ISO date strings and densified by the callers via `date_range`.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.money import to_money
from finance_backend.app.models.distribution import Commission
from finance_backend.app.models.finance_enums import (
    CommissionStatus, NON_REVENUE_ORDER_STATUSES, PaymentStatus, RefundStatus,
    SettlementStatus, SettlementType, WalletTransactionType, WithdrawalStatus,
)
from finance_backend.app.models.order import Order, Payment, Refund
from finance_backend.app.models.settlement import Settlement
from finance_backend.app.models.user import WalletTransaction
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.schemas.analytics import (
    DailyAmount, DayTypeRevenue, MerchantSettlementTotals, OrderRevenue,
    PaymentChannelSummary, RefundStat, SettlementTotals, WithdrawalTotals,
)


# Time helpers

def period_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """Inclusive date period -> half-open datetime window."""
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def optional_bounds(start: Optional[date], end: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Like period_bounds, for open-ended filters where either date may be missing."""
    return (
        datetime.combine(start, time.min) if start is not None else None,
        datetime.combine(end + timedelta(days=1), time.min) if end is not None else None,
    )


def date_range(start: date, end: date) -> List[str]:
    """Every day from start to end inclusive, as ISO strings."""
    days = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def day_key(value) -> str:
    """
    Normalize a DATE() result to 'YYYY-MM-DD'.

    PostgreSQL returns a date, SQLite returns a string.
    """
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


def _windowed(stmt, column, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        stmt = stmt.where(column >= start)
    if end is not None:
        stmt = stmt.where(column < end)
    return stmt


# Scalar totals

async def sum_payments(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    """Successful payment amount, windowed on paid_at."""
    stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
        Payment.status == PaymentStatus.SUCCESS
    )
    stmt = _windowed(stmt, Payment.paid_at, start, end)
    return to_money((await db.execute(stmt)).scalar())


async def sum_refunds(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    """Successful refund amount, windowed on refunded_at."""
    stmt = select(func.coalesce(func.sum(Refund.amount), 0)).where(
        Refund.status == RefundStatus.SUCCESS
    )
    stmt = _windowed(stmt, Refund.refunded_at, start, end)
    return to_money((await db.execute(stmt)).scalar())


async def sum_commissions(
    db: AsyncSession,
    status: CommissionStatus = CommissionStatus.SETTLED,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    """Commission amount in a status; settled commissions are windowed on settled_at, others on created_at."""
    column = Commission.settled_at if status == CommissionStatus.SETTLED else Commission.created_at
    stmt = select(func.coalesce(func.sum(Commission.amount), 0)).where(Commission.status == status)
    stmt = _windowed(stmt, column, start, end)
    return to_money((await db.execute(stmt)).scalar())


async def count_orders(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    revenue_only: bool = False,
) -> int:
    """Orders created in the window."""
    stmt = select(func.count(Order.id))
    if revenue_only:
        stmt = stmt.where(Order.status.not_in(NON_REVENUE_ORDER_STATUSES))
    stmt = _windowed(stmt, Order.created_at, start, end)
    return (await db.execute(stmt)).scalar() or 0


async def settlement_totals(
    db: AsyncSession,
    settlement_type: Optional[SettlementType] = None,
    status: Optional[SettlementStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    time_column: str = "created_at",
) -> SettlementTotals:
    """Count and amount sums of settlements, windowed on `time_column` (created_at or settled_at)."""
    stmt = select(
        func.count(Settlement.id),
        func.coalesce(func.sum(Settlement.total_amount), 0),
        func.coalesce(func.sum(Settlement.fee), 0),
        func.coalesce(func.sum(Settlement.actual_amount), 0),
    )
    if settlement_type is not None:
        stmt = stmt.where(Settlement.type == settlement_type)
    if status is not None:
        stmt = stmt.where(Settlement.status == status)
    stmt = _windowed(stmt, getattr(Settlement, time_column), start, end)

    count, total, fee, actual = (await db.execute(stmt)).one()
    return SettlementTotals(
        count=count or 0,
        total_amount=to_money(total),
        total_fee=to_money(fee),
        total_actual=to_money(actual),
    )


async def withdrawal_totals(
    db: AsyncSession,
    status: Optional[WithdrawalStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    time_column: str = "created_at",
) -> WithdrawalTotals:
    """Count, requested amount and paid-out amount of withdrawals."""
    stmt = select(
        func.count(Withdrawal.id),
        func.coalesce(func.sum(Withdrawal.amount), 0),
        func.coalesce(func.sum(Withdrawal.actual_amount), 0),
    )
    if status is not None:
        stmt = stmt.where(Withdrawal.status == status)
    stmt = _windowed(stmt, getattr(Withdrawal, time_column), start, end)

    count, amount, actual = (await db.execute(stmt)).one()
    return WithdrawalTotals(count=count or 0, amount=to_money(amount), actual_amount=to_money(actual))


async def wallet_transaction_totals(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Dict[WalletTransactionType, object]:
    """Wallet ledger amount per transaction type; types without rows map to zero."""
    stmt = select(
        WalletTransaction.type,
        func.coalesce(func.sum(WalletTransaction.amount), 0),
    ).group_by(WalletTransaction.type)
    stmt = _windowed(stmt, WalletTransaction.created_at, start, end)

    totals = {tx_type: to_money(0) for tx_type in WalletTransactionType}
    for tx_type, amount in (await db.execute(stmt)).all():
        totals[WalletTransactionType(tx_type)] = to_money(amount)
    return totals


# Per-day series

async def revenue_by_day(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, DailyAmount]:
    """Successful payments per day of paid_at."""
    day = func.date(Payment.paid_at)
    stmt = (
        select(day, func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id))
        .where(Payment.status == PaymentStatus.SUCCESS)
        .group_by(day)
    )
    stmt = _windowed(stmt, Payment.paid_at, start, end)
    return {
        day_key(d): DailyAmount(date=day_key(d), amount=to_money(amount), count=count)
        for d, amount, count in (await db.execute(stmt)).all()
    }


async def paid_orders_by_day(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, int]:
    """Revenue-bearing orders per day of paid_at."""
    day = func.date(Order.paid_at)
    stmt = (
        select(day, func.count(Order.id))
        .where(Order.status.not_in(NON_REVENUE_ORDER_STATUSES))
        .group_by(day)
    )
    stmt = _windowed(stmt, Order.paid_at, start, end)
    return {day_key(d): count for d, count in (await db.execute(stmt)).all()}


async def orders_created_by_day(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, int]:
    """Revenue-bearing orders per day of created_at."""
    day = func.date(Order.created_at)
    stmt = (
        select(day, func.count(Order.id))
        .where(Order.status.not_in(NON_REVENUE_ORDER_STATUSES))
        .group_by(day)
    )
    stmt = _windowed(stmt, Order.created_at, start, end)
    return {day_key(d): count for d, count in (await db.execute(stmt)).all()}


async def refunds_by_day(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, DailyAmount]:
    """Successful refunds per day of refunded_at."""
    day = func.date(Refund.refunded_at)
    stmt = (
        select(day, func.coalesce(func.sum(Refund.amount), 0), func.count(Refund.id))
        .where(Refund.status == RefundStatus.SUCCESS)
        .group_by(day)
    )
    stmt = _windowed(stmt, Refund.refunded_at, start, end)
    return {
        day_key(d): DailyAmount(date=day_key(d), amount=to_money(amount), count=count)
        for d, amount, count in (await db.execute(stmt)).all()
    }


async def commissions_by_day(db: AsyncSession, start: datetime, end: datetime) -> Dict[str, DailyAmount]:
    """Settled commissions per day of settled_at."""
    day = func.date(Commission.settled_at)
    stmt = (
        select(day, func.coalesce(func.sum(Commission.amount), 0), func.count(Commission.id))
        .where(Commission.status == CommissionStatus.SETTLED)
        .group_by(day)
    )
    stmt = _windowed(stmt, Commission.settled_at, start, end)
    return {
        day_key(d): DailyAmount(date=day_key(d), amount=to_money(amount), count=count)
        for d, amount, count in (await db.execute(stmt)).all()
    }


# Breakdowns

async def order_revenue_by_type(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[OrderRevenue]:
    """Revenue-bearing order amount and count per order type, windowed on paid_at."""
    stmt = (
        select(Order.type, func.coalesce(func.sum(Order.actual_amount), 0), func.count(Order.id))
        .where(Order.status.not_in(NON_REVENUE_ORDER_STATUSES))
        .group_by(Order.type)
        .order_by(Order.type)
    )
    stmt = _windowed(stmt, Order.paid_at, start, end)
    return [
        OrderRevenue(order_type=order_type.value, total_revenue=to_money(revenue), order_count=count)
        for order_type, revenue, count in (await db.execute(stmt)).all()
    ]


async def order_revenue_by_day_and_type(
    db: AsyncSession,
    start: datetime,
    end: datetime,
) -> List[DayTypeRevenue]:
    day = func.date(Order.paid_at)
    stmt = (
        select(day, Order.type, func.coalesce(func.sum(Order.actual_amount), 0), func.count(Order.id))
        .where(Order.status.not_in(NON_REVENUE_ORDER_STATUSES))
        .group_by(day, Order.type)
        .order_by(day)
    )
    stmt = _windowed(stmt, Order.paid_at, start, end)
    return [
        DayTypeRevenue(date=day_key(d), order_type=order_type.value, revenue=to_money(revenue), orders=count)
        for d, order_type, revenue, count in (await db.execute(stmt)).all()
    ]


async def payment_channel_breakdown(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[PaymentChannelSummary]:
    """Successful payments grouped by payment_channel. Percentages are filled in by the caller."""
    stmt = (
        select(Payment.payment_channel, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status == PaymentStatus.SUCCESS)
        .group_by(Payment.payment_channel)
        .order_by(Payment.payment_channel)
    )
    stmt = _windowed(stmt, Payment.paid_at, start, end)
    return [
        PaymentChannelSummary(channel=channel.value, count=count, amount=to_money(amount))
        for channel, count, amount in (await db.execute(stmt)).all()
    ]


async def refund_stats_by_status(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[RefundStat]:
    """Refund requests per status, windowed on created_at (unfinished refunds have no refunded_at)."""
    stmt = (
        select(Refund.status, func.count(Refund.id), func.coalesce(func.sum(Refund.amount), 0))
        .group_by(Refund.status)
        .order_by(Refund.status)
    )
    stmt = _windowed(stmt, Refund.created_at, start, end)
    return [
        RefundStat(status=status.value, count=count, amount=to_money(amount))
        for status, count, amount in (await db.execute(stmt)).all()
    ]


async def merchant_settlement_totals(
    db: AsyncSession,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> List[MerchantSettlementTotals]:
    """Merchant settlements summed per merchant, for settlements whose period lies inside the given one."""
    stmt = (
        select(
            Settlement.target_id,
            func.coalesce(func.sum(Settlement.total_amount), 0),
            func.coalesce(func.sum(Settlement.fee), 0),
            func.coalesce(func.sum(Settlement.actual_amount), 0),
            func.coalesce(func.sum(Settlement.order_count), 0),
        )
        .where(Settlement.type == SettlementType.MERCHANT)
        .group_by(Settlement.target_id)
        .order_by(Settlement.target_id)
    )
    if period_start is not None:
        stmt = stmt.where(Settlement.period_start >= period_start)
    if period_end is not None:
        stmt = stmt.where(Settlement.period_end <= period_end)

    return [
        MerchantSettlementTotals(
            target_id=target_id,
            total_amount=to_money(total),
            total_fee=to_money(fee),
            actual_amount=to_money(actual),
            order_count=int(orders or 0),
        )
        for target_id, total, fee, actual, orders in (await db.execute(stmt)).all()
    ]


async def distributors_with_pending_commissions(
    db: AsyncSession,
    start: datetime,
    end: datetime,
) -> List[int]:
    """Distributor ids holding at least one pending commission created in the window."""
    stmt = (
        select(Commission.distributor_id)
        .where(Commission.status == CommissionStatus.PENDING)
        .distinct()
        .order_by(Commission.distributor_id)
    )
    stmt = _windowed(stmt, Commission.created_at, start, end)
    return list((await db.execute(stmt)).scalars().all())

"""
Finance Dashboard Service.

Headline figures for the finance dashboard: revenue windows (today,
yesterday, this month, last month), outgoings, net profit, a recent revenue
trend, payment channel shares, settlement queues and refund stats.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.clock import Clock, system_clock
from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import DatabaseError
from finance_backend.app.core.money import ZERO, percentage, quantize
from finance_backend.app.models.finance_enums import SettlementStatus, SettlementType, WithdrawalStatus
from finance_backend.app.models.user import User
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.schemas.analytics import (
    DashboardOverview, PaymentChannelSummary, PendingWithdrawalItem,
    RefundStat, RevenueTrendPoint, SettlementStat,
)
from finance_backend.app.services import ledger_queries

logger = logging.getLogger(__name__)


def growth_rate(current, previous):
    """Percentage change from previous to current; 0 when there is no previous figure."""
    if previous <= 0:
        return ZERO
    return quantize((current - previous) / previous * 100)


def clamp_trend_days(days: Optional[int]) -> int:
    if days is None or days <= 0:
        return settings.revenue_trend_default_days
    return min(days, settings.revenue_trend_max_days)


class DashboardService:

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    def _anchors(self):
        now = self.clock.now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today.replace(day=1)
        last_month_start = (month_start - timedelta(days=1)).replace(day=1)
        return today, month_start, last_month_start

    async def get_overview_data(self, db: AsyncSession) -> DashboardOverview:
        today, month_start, last_month_start = self._anchors()
        tomorrow = today + timedelta(days=1)
        yesterday = today - timedelta(days=1)

        try:
            total_revenue = await ledger_queries.sum_payments(db)
            today_revenue = await ledger_queries.sum_payments(db, today, tomorrow)
            yesterday_revenue = await ledger_queries.sum_payments(db, yesterday, today)
            month_revenue = await ledger_queries.sum_payments(db, month_start, tomorrow)
            last_month_revenue = await ledger_queries.sum_payments(db, last_month_start, month_start)

            total_refund = await ledger_queries.sum_refunds(db)
            today_refund = await ledger_queries.sum_refunds(db, today, tomorrow)
            month_refund = await ledger_queries.sum_refunds(db, month_start, tomorrow)

            total_commission = await ledger_queries.sum_commissions(db)
            month_commission = await ledger_queries.sum_commissions(db, start=month_start, end=tomorrow)

            pending_settlement = await ledger_queries.settlement_totals(db, status=SettlementStatus.PENDING)
            month_settled = await ledger_queries.settlement_totals(
                db, status=SettlementStatus.COMPLETED, start=month_start, end=tomorrow, time_column="settled_at"
            )
            total_settled = await ledger_queries.settlement_totals(db, status=SettlementStatus.COMPLETED)

            pending_withdrawal = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.PENDING)
            month_withdrawal = await ledger_queries.withdrawal_totals(
                db, WithdrawalStatus.SUCCESS, start=month_start, end=tomorrow, time_column="processed_at"
            )
            total_withdrawal = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.SUCCESS)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return DashboardOverview(
            total_revenue=total_revenue,
            today_revenue=today_revenue,
            yesterday_revenue=yesterday_revenue,
            month_revenue=month_revenue,
            last_month_revenue=last_month_revenue,
            revenue_growth_rate=growth_rate(month_revenue, last_month_revenue),
            total_refund=total_refund,
            today_refund=today_refund,
            month_refund=month_refund,
            total_commission=total_commission,
            month_commission=month_commission,
            pending_settlement=pending_settlement.total_amount,
            month_settled=month_settled.total_actual,
            total_settled=total_settled.total_actual,
            pending_withdrawal=pending_withdrawal.amount,
            pending_count=pending_withdrawal.count,
            month_withdrawal=month_withdrawal.actual_amount,
            total_withdrawal=total_withdrawal.actual_amount,
            total_net_profit=total_revenue - total_refund - total_commission - total_settled.total_actual,
            month_net_profit=month_revenue - month_refund - month_commission - month_settled.total_actual,
        )

    async def get_revenue_trend(self, db: AsyncSession, days: Optional[int] = None) -> List[RevenueTrendPoint]:
        """One point per day for the last `days` days, today included, oldest first."""
        days = clamp_trend_days(days)
        today = self.clock.now().date()
        first_day = today - timedelta(days=days - 1)
        start, end = ledger_queries.period_bounds(first_day, today)

        try:
            revenue = await ledger_queries.revenue_by_day(db, start, end)
            refunds = await ledger_queries.refunds_by_day(db, start, end)
            commissions = await ledger_queries.commissions_by_day(db, start, end)
            orders = await ledger_queries.orders_created_by_day(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        points = []
        for day in ledger_queries.date_range(first_day, today):
            point = RevenueTrendPoint(
                date=day,
                revenue=revenue[day].amount if day in revenue else ZERO,
                refund=refunds[day].amount if day in refunds else ZERO,
                commission=commissions[day].amount if day in commissions else ZERO,
                order_count=orders.get(day, 0),
            )
            point.net_revenue = point.revenue - point.refund - point.commission
            points.append(point)
        return points

    async def get_payment_channel_summary(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PaymentChannelSummary]:
        try:
            channels = await ledger_queries.payment_channel_breakdown(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        total = sum((c.amount for c in channels), ZERO)
        for channel in channels:
            channel.percentage = percentage(channel.amount, total)
        return channels

    async def get_settlement_stats(self, db: AsyncSession) -> List[SettlementStat]:
        """Pending and completed settlements per settlement type."""
        stats = []
        try:
            for settlement_type in (SettlementType.MERCHANT, SettlementType.DISTRIBUTOR):
                pending = await ledger_queries.settlement_totals(db, settlement_type, SettlementStatus.PENDING)
                completed = await ledger_queries.settlement_totals(db, settlement_type, SettlementStatus.COMPLETED)
                stats.append(SettlementStat(
                    type=settlement_type.value,
                    pending_count=pending.count,
                    pending_amount=pending.total_amount,
                    completed_count=completed.count,
                    completed_amount=completed.total_actual,
                ))
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return stats

    async def get_pending_withdrawals(self, db: AsyncSession, limit: int = 10) -> List[PendingWithdrawalItem]:
        """Oldest pending withdrawals with the requesting user's phone."""
        if limit <= 0:
            limit = 10
        try:
            result = await db.execute(
                select(Withdrawal, User.phone)
                .outerjoin(User, User.id == Withdrawal.user_id)
                .where(Withdrawal.status == WithdrawalStatus.PENDING)
                .order_by(asc(Withdrawal.created_at), asc(Withdrawal.id))
                .limit(limit)
            )
            rows = result.all()
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return [
            PendingWithdrawalItem(
                id=w.id,
                withdrawal_no=w.withdrawal_no,
                user_id=w.user_id,
                user_phone=phone,
                type=w.type.value,
                amount=w.amount,
                withdraw_to=w.withdraw_to.value,
                created_at=w.created_at,
            )
            for w, phone in rows
        ]

    async def get_refund_stats(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[RefundStat]:
        try:
            return await ledger_queries.refund_stats_by_status(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc


dashboard_service = DashboardService()

"""
Finance Statistics Service.

Read-only reports for the finance back office, built on the ledger queries.
Date-range reports return one row per day of the range, zero rows included.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.clock import Clock, system_clock
from finance_backend.app.core.exceptions import DatabaseError, InvalidParameterError
from finance_backend.app.core.money import ZERO
from finance_backend.app.domain.finance.withdrawal_audit_service import WithdrawalAuditService, withdrawal_audit_service
from finance_backend.app.models.finance_enums import (
    OrderType, SettlementStatus, SettlementType, WalletTransactionType, WithdrawalStatus,
)
from finance_backend.app.models.merchant import Merchant
from finance_backend.app.schemas.analytics import (
    DailyRevenueReport, FinanceOverview, MerchantSettlementReport, OrderRevenue,
    RevenueStatistics, SettlementSummary, TransactionStatistics, WithdrawalSummary,
)
from finance_backend.app.services import ledger_queries

logger = logging.getLogger(__name__)


def check_date_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise InvalidParameterError(
            "start_date must not be after end_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


class StatisticsService:

    def __init__(self, clock: Clock = system_clock, withdrawals: Optional[WithdrawalAuditService] = None):
        self.clock = clock
        self.withdrawals = withdrawals or WithdrawalAuditService(clock)

    def _today_bounds(self):
        today = self.clock.now().replace(hour=0, minute=0, second=0, microsecond=0)
        return today, today + timedelta(days=1)

    async def get_finance_overview(self, db: AsyncSession) -> FinanceOverview:
        """All-time totals plus today's revenue and the audit queues."""
        today, tomorrow = self._today_bounds()
        try:
            total_revenue = await ledger_queries.sum_payments(db)
            total_refund = await ledger_queries.sum_refunds(db)
            total_commission = await ledger_queries.sum_commissions(db)
            completed = await ledger_queries.settlement_totals(db, status=SettlementStatus.COMPLETED)
            today_revenue = await ledger_queries.sum_payments(db, today, tomorrow)
            today_orders = await ledger_queries.count_orders(db, today, tomorrow)
            pending_withdrawals = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.PENDING)
            pending_settlements = await ledger_queries.settlement_totals(db, status=SettlementStatus.PENDING)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return FinanceOverview(
            total_revenue=total_revenue,
            total_refund=total_refund,
            total_commission=total_commission,
            total_settlement=completed.total_actual,
            today_revenue=today_revenue,
            today_orders=today_orders,
            pending_withdrawals=pending_withdrawals.count,
            pending_settlements=pending_settlements.count,
        )

    async def get_revenue_statistics(
        self, db: AsyncSession, start_date: date, end_date: date
    ) -> List[RevenueStatistics]:
        """Paid revenue, paid orders and refunds for every day in [start_date, end_date]."""
        check_date_range(start_date, end_date)
        start, end = ledger_queries.period_bounds(start_date, end_date)
        try:
            revenue = await ledger_queries.revenue_by_day(db, start, end)
            orders = await ledger_queries.paid_orders_by_day(db, start, end)
            refunds = await ledger_queries.refunds_by_day(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        rows = []
        for day in ledger_queries.date_range(start_date, end_date):
            rows.append(RevenueStatistics(
                date=day,
                revenue=revenue[day].amount if day in revenue else ZERO,
                orders=orders.get(day, 0),
                refund=refunds[day].amount if day in refunds else ZERO,
            ))
        return rows

    async def get_order_revenue_by_type(
        self,
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[OrderRevenue]:
        start, end = ledger_queries.optional_bounds(start_date, end_date)
        try:
            return await ledger_queries.order_revenue_by_type(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

    async def get_daily_revenue_report(
        self, db: AsyncSession, start_date: date, end_date: date
    ) -> List[DailyRevenueReport]:
        """
        Per-day revenue split by order type, with refunds and net revenue.

        Every day of the range is present. Refunds are reported on the day
        they were paid back even when that day has no order revenue.
        """
        check_date_range(start_date, end_date)
        start, end = ledger_queries.period_bounds(start_date, end_date)
        try:
            by_type = await ledger_queries.order_revenue_by_day_and_type(db, start, end)
            refunds = await ledger_queries.refunds_by_day(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        reports = {
            day: DailyRevenueReport(date=day)
            for day in ledger_queries.date_range(start_date, end_date)
        }
        for row in by_type:
            report = reports.get(row.date)
            if report is None:
                continue
            if row.order_type == OrderType.RENTAL.value:
                report.rental_revenue = row.revenue
                report.rental_orders = row.orders
            elif row.order_type == OrderType.HOTEL.value:
                report.hotel_revenue = row.revenue
                report.hotel_orders = row.orders
            elif row.order_type == OrderType.MALL.value:
                report.mall_revenue = row.revenue
                report.mall_orders = row.orders
            report.total_revenue += row.revenue
            report.total_orders += row.orders

        for day, refund in refunds.items():
            if day in reports:
                reports[day].refund_amount = refund.amount
                reports[day].refund_count = refund.count

        for report in reports.values():
            report.net_revenue = report.total_revenue - report.refund_amount
        return list(reports.values())

    async def get_transaction_statistics(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> TransactionStatistics:
        try:
            totals = await ledger_queries.wallet_transaction_totals(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return TransactionStatistics(
            total_recharge=totals[WalletTransactionType.RECHARGE],
            total_consume=totals[WalletTransactionType.CONSUME],
            total_refund=totals[WalletTransactionType.REFUND],
            total_withdraw=totals[WalletTransactionType.WITHDRAW],
            total_deposit=totals[WalletTransactionType.DEPOSIT],
            total_return_deposit=totals[WalletTransactionType.RETURN_DEPOSIT],
        )

    async def get_settlement_summary(
        self,
        db: AsyncSession,
        settlement_type: Optional[SettlementType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SettlementSummary:
        try:
            total = await ledger_queries.settlement_totals(db, settlement_type, None, start, end)
            pending = await ledger_queries.settlement_totals(db, settlement_type, SettlementStatus.PENDING, start, end)
            completed = await ledger_queries.settlement_totals(db, settlement_type, SettlementStatus.COMPLETED, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return SettlementSummary(
            total_settlements=total.count,
            total_amount=total.total_amount,
            total_fee=total.total_fee,
            total_actual=total.total_actual,
            pending_count=pending.count,
            completed_count=completed.count,
        )

    async def get_withdrawal_summary(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> WithdrawalSummary:
        return await self.withdrawals.get_withdrawal_summary(db, start, end)

    async def get_merchant_settlement_report(
        self,
        db: AsyncSession,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> List[MerchantSettlementReport]:
        """Merchant settlement totals with the merchant's name and current rate."""
        try:
            totals = await ledger_queries.merchant_settlement_totals(db, period_start, period_end)
            merchants = {}
            if totals:
                result = await db.execute(
                    select(Merchant.id, Merchant.name, Merchant.commission_rate)
                    .where(Merchant.id.in_([row.target_id for row in totals]))
                )
                merchants = {row.id: row for row in result.all()}
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        reports = []
        for row in totals:
            report = MerchantSettlementReport(
                merchant_id=row.target_id,
                total_revenue=row.total_amount,
                total_fee=row.total_fee,
                settled_amount=row.actual_amount,
                total_orders=row.order_count,
            )
            merchant = merchants.get(row.target_id)
            if merchant is not None:
                report.merchant_name = merchant.name
                report.commission_rate = merchant.commission_rate
            reports.append(report)
        return reports


statistics_service = StatisticsService(withdrawals=withdrawal_audit_service)

"""
Finance Reports API Endpoints.

Read-only overview, dashboard and revenue reports for back-office admins.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.dependencies import get_dashboard_service, get_statistics_service
from finance_backend.app.core.guards import require_finance_reader
from finance_backend.app.schemas.analytics import (
    DailyRevenueReport, DashboardOverview, FinanceOverview, MerchantSettlementReport,
    OrderRevenue, PaymentChannelSummary, PendingWithdrawalItem, RefundStat,
    RevenueStatistics, RevenueTrendPoint, SettlementStat, TransactionStatistics,
)
from finance_backend.app.services import ledger_queries
from finance_backend.app.services.dashboard import DashboardService
from finance_backend.app.services.statistics import StatisticsService

router = APIRouter(prefix="/admin/finance", tags=["Admin - Finance Reports"])


@router.get("/overview", response_model=FinanceOverview)
async def get_overview(
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    return await statistics.get_finance_overview(db)


@router.get("/dashboard", response_model=DashboardOverview)
async def get_dashboard(
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Revenue, outgoings and net profit for today, this month and all time.
    """
    return await dashboard.get_overview_data(db)


@router.get("/dashboard/trend", response_model=List[RevenueTrendPoint])
async def get_revenue_trend(
    days: Optional[int] = Query(None, description="Number of days, capped at 30"),
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    return await dashboard.get_revenue_trend(db, days)


@router.get("/dashboard/channels", response_model=List[PaymentChannelSummary])
async def get_payment_channels(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    return await dashboard.get_payment_channel_summary(db, start, end)


@router.get("/dashboard/settlements", response_model=List[SettlementStat])
async def get_settlement_stats(
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    return await dashboard.get_settlement_stats(db)


@router.get("/dashboard/withdrawals", response_model=List[PendingWithdrawalItem])
async def get_pending_withdrawals(
    limit: int = Query(10, ge=1, le=100),
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Oldest withdrawals waiting for review.
    """
    return await dashboard.get_pending_withdrawals(db, limit)


@router.get("/dashboard/refunds", response_model=List[RefundStat])
async def get_refund_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    dashboard: DashboardService = Depends(get_dashboard_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    return await dashboard.get_refund_stats(db, start, end)


@router.get("/revenue/statistics", response_model=List[RevenueStatistics])
async def get_revenue_statistics(
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Daily revenue, paid orders and refunds. Every day of the range is returned.
    """
    return await statistics.get_revenue_statistics(db, start_date, end_date)


@router.get("/revenue/daily", response_model=List[DailyRevenueReport])
async def get_daily_revenue(
    start_date: date = Query(...),
    end_date: date = Query(...),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    return await statistics.get_daily_revenue_report(db, start_date, end_date)


@router.get("/revenue/by-type", response_model=List[OrderRevenue])
async def get_revenue_by_type(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    return await statistics.get_order_revenue_by_type(db, start_date, end_date)


@router.get("/transactions/statistics", response_model=TransactionStatistics)
async def get_transaction_statistics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    start, end = ledger_queries.optional_bounds(start_date, end_date)
    return await statistics.get_transaction_statistics(db, start, end)


@router.get("/reports/merchant-settlement", response_model=List[MerchantSettlementReport])
async def get_merchant_settlement_report(
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    current_admin: dict = Depends(require_finance_reader),
    statistics: StatisticsService = Depends(get_statistics_service),
    db: AsyncSession = Depends(get_db)
):
    return await statistics.get_merchant_settlement_report(db, period_start, period_end)

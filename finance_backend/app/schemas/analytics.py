"""
Finance analytics schemas.

Typed rows returned by the ledger queries and the reports built on them.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal

ZERO = Decimal("0.00")


# Ledger query rows

class SettlementTotals(BaseModel):
    count: int = 0
    total_amount: Decimal = ZERO
    total_fee: Decimal = ZERO
    total_actual: Decimal = ZERO


class WithdrawalTotals(BaseModel):
    count: int = 0
    amount: Decimal = ZERO
    actual_amount: Decimal = ZERO


class DailyAmount(BaseModel):
    """Sum and count of one kind of money movement on one day."""
    date: str
    amount: Decimal = ZERO
    count: int = 0


class DayTypeRevenue(BaseModel):
    date: str
    order_type: str
    revenue: Decimal = ZERO
    orders: int = 0


class MerchantSettlementTotals(BaseModel):
    target_id: int
    total_amount: Decimal = ZERO
    total_fee: Decimal = ZERO
    actual_amount: Decimal = ZERO
    order_count: int = 0


# Statistics

class FinanceOverview(BaseModel):
    total_revenue: Decimal
    total_refund: Decimal
    total_commission: Decimal
    total_settlement: Decimal
    today_revenue: Decimal
    today_orders: int
    pending_withdrawals: int
    pending_settlements: int


class RevenueStatistics(BaseModel):
    """One day of paid revenue."""
    date: str
    revenue: Decimal = ZERO
    orders: int = 0
    refund: Decimal = ZERO


class OrderRevenue(BaseModel):
    order_type: str
    total_revenue: Decimal = ZERO
    order_count: int = 0


class DailyRevenueReport(BaseModel):
    date: str
    rental_revenue: Decimal = ZERO
    rental_orders: int = 0
    hotel_revenue: Decimal = ZERO
    hotel_orders: int = 0
    mall_revenue: Decimal = ZERO
    mall_orders: int = 0
    total_revenue: Decimal = ZERO
    total_orders: int = 0
    refund_amount: Decimal = ZERO
    refund_count: int = 0
    net_revenue: Decimal = ZERO


class TransactionStatistics(BaseModel):
    """Wallet ledger totals by transaction type."""
    total_recharge: Decimal = ZERO
    total_consume: Decimal = ZERO
    total_refund: Decimal = ZERO
    total_withdraw: Decimal = ZERO
    total_deposit: Decimal = ZERO
    total_return_deposit: Decimal = ZERO


class SettlementSummary(BaseModel):
    total_settlements: int = 0
    total_amount: Decimal = ZERO
    total_fee: Decimal = ZERO
    total_actual: Decimal = ZERO
    pending_count: int = 0
    completed_count: int = 0


class WithdrawalSummary(BaseModel):
    total_withdrawals: int = 0
    total_amount: Decimal = ZERO
    pending_count: int = 0
    pending_amount: Decimal = ZERO
    approved_count: int = 0  # Paid out (status success)
    approved_amount: Decimal = ZERO
    rejected_count: int = 0


class MerchantSettlementReport(BaseModel):
    merchant_id: int
    merchant_name: str = ""
    commission_rate: Decimal = Decimal("0")
    total_revenue: Decimal = ZERO
    total_fee: Decimal = ZERO
    settled_amount: Decimal = ZERO
    total_orders: int = 0


# Dashboard

class DashboardOverview(BaseModel):
    # Revenue
    total_revenue: Decimal
    today_revenue: Decimal
    yesterday_revenue: Decimal
    month_revenue: Decimal
    last_month_revenue: Decimal
    revenue_growth_rate: Decimal

    # Outgoings
    total_refund: Decimal
    today_refund: Decimal
    month_refund: Decimal
    total_commission: Decimal
    month_commission: Decimal

    # Settlements
    pending_settlement: Decimal
    month_settled: Decimal
    total_settled: Decimal

    # Withdrawals
    pending_withdrawal: Decimal
    pending_count: int
    month_withdrawal: Decimal
    total_withdrawal: Decimal

    # Net profit
    total_net_profit: Decimal
    month_net_profit: Decimal


class RevenueTrendPoint(BaseModel):
    date: str
    revenue: Decimal = ZERO
    refund: Decimal = ZERO
    commission: Decimal = ZERO
    net_revenue: Decimal = ZERO
    order_count: int = 0


class PaymentChannelSummary(BaseModel):
    channel: str
    count: int = 0
    amount: Decimal = ZERO
    percentage: Decimal = ZERO


class SettlementStat(BaseModel):
    type: str
    pending_count: int = 0
    pending_amount: Decimal = ZERO
    completed_count: int = 0
    completed_amount: Decimal = ZERO


class PendingWithdrawalItem(BaseModel):
    id: int
    withdrawal_no: str
    user_id: int
    user_phone: Optional[str] = None
    type: str
    amount: Decimal
    withdraw_to: str
    created_at: datetime


class RefundStat(BaseModel):
    status: str
    count: int = 0
    amount: Decimal = ZERO

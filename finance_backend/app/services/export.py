"""
Finance CSV exports.

Each export returns `(content, filename)`. Content is UTF-8 with a
byte-order mark so spreadsheet tools pick the right encoding. Codes are
replaced by readable labels, amounts have two decimals, timestamps are
`YYYY-MM-DD HH:MM:SS`.
"""

import csv
import io
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.clock import Clock, system_clock
from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import AppException, ExportError
from finance_backend.app.models.finance_enums import (
    SettlementStatus, SettlementType, WalletTransactionType,
    WithdrawalStatus, WithdrawalType, WithdrawTo,
)
from finance_backend.app.models.settlement import Settlement
from finance_backend.app.models.user import WalletTransaction
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.services.statistics import StatisticsService

logger = logging.getLogger(__name__)

BOM = "\ufeff"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_STAMP = "%Y%m%d%H%M%S"

SETTLEMENT_TYPE_LABELS = {
    SettlementType.MERCHANT: "Merchant",
    SettlementType.DISTRIBUTOR: "Distributor",
}

SETTLEMENT_STATUS_LABELS = {
    SettlementStatus.PENDING: "Pending",
    SettlementStatus.PROCESSING: "Processing",
    SettlementStatus.COMPLETED: "Completed",
    SettlementStatus.FAILED: "Failed",
}

WITHDRAWAL_TYPE_LABELS = {
    WithdrawalType.WALLET: "Wallet balance",
    WithdrawalType.COMMISSION: "Commission",
}

WITHDRAWAL_STATUS_LABELS = {
    WithdrawalStatus.PENDING: "Pending review",
    WithdrawalStatus.APPROVED: "Approved",
    WithdrawalStatus.PROCESSING: "Processing",
    WithdrawalStatus.SUCCESS: "Paid out",
    WithdrawalStatus.REJECTED: "Rejected",
}

WITHDRAW_TO_LABELS = {
    WithdrawTo.WECHAT: "WeChat",
    WithdrawTo.ALIPAY: "Alipay",
    WithdrawTo.BANK: "Bank card",
}

TRANSACTION_TYPE_LABELS = {
    WalletTransactionType.RECHARGE: "Recharge",
    WalletTransactionType.CONSUME: "Consumption",
    WalletTransactionType.REFUND: "Refund",
    WalletTransactionType.WITHDRAW: "Withdrawal",
    WalletTransactionType.DEPOSIT: "Deposit",
    WalletTransactionType.RETURN_DEPOSIT: "Deposit returned",
}


def label(labels: dict, value) -> str:
    """Readable label for an enum code; unknown codes pass through."""
    if value is None:
        return ""
    return labels.get(value, getattr(value, "value", str(value)))


def money(value: Optional[Decimal]) -> str:
    return "%.2f" % (value if value is not None else Decimal("0"))


def timestamp(value: Optional[datetime]) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value is not None else ""


def render_csv(headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
    buffer = io.StringIO()
    buffer.write(BOM)
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


class ExportService:

    def __init__(self, clock: Clock = system_clock, statistics: Optional[StatisticsService] = None):
        self.clock = clock
        self.statistics = statistics or StatisticsService(clock)

    def _filename(self, name: str) -> str:
        return f"{name}_{self.clock.now().strftime(FILENAME_STAMP)}.csv"

    async def _fetch(self, db: AsyncSession, stmt) -> list:
        try:
            return list((await db.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise ExportError(exc) from exc

    @staticmethod
    def _render(headers: Sequence[str], rows: Iterable[Sequence]) -> bytes:
        try:
            return render_csv(headers, rows)
        except (csv.Error, UnicodeError, TypeError, ValueError) as exc:
            raise ExportError(exc) from exc

    async def export_settlements(
        self,
        db: AsyncSession,
        settlement_type: Optional[SettlementType] = None,
        target_id: Optional[int] = None,
        status: Optional[SettlementStatus] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> Tuple[bytes, str]:
        stmt = select(Settlement)
        if settlement_type is not None:
            stmt = stmt.where(Settlement.type == settlement_type)
        if target_id is not None:
            stmt = stmt.where(Settlement.target_id == target_id)
        if status is not None:
            stmt = stmt.where(Settlement.status == status)
        if period_start is not None:
            stmt = stmt.where(Settlement.period_start >= period_start)
        if period_end is not None:
            stmt = stmt.where(Settlement.period_end <= period_end)
        stmt = stmt.order_by(desc(Settlement.created_at), desc(Settlement.id)).limit(
            settings.export_settlement_max_rows
        )
        settlements: List[Settlement] = await self._fetch(db, stmt)

        headers = [
            "Settlement No", "Type", "Target ID", "Period Start", "Period End",
            "Total Amount", "Fee", "Actual Amount", "Order Count", "Status",
            "Settled At", "Created At",
        ]
        rows = [
            [
                s.settlement_no,
                label(SETTLEMENT_TYPE_LABELS, s.type),
                s.target_id,
                s.period_start.isoformat(),
                s.period_end.isoformat(),
                money(s.total_amount),
                money(s.fee),
                money(s.actual_amount),
                s.order_count,
                label(SETTLEMENT_STATUS_LABELS, s.status),
                timestamp(s.settled_at),
                timestamp(s.created_at),
            ]
            for s in settlements
        ]
        content = self._render(headers, rows)
        logger.info("Exported %s settlements", len(rows))
        return content, self._filename("settlements")

    async def export_withdrawals(
        self,
        db: AsyncSession,
        user_id: Optional[int] = None,
        withdrawal_type: Optional[WithdrawalType] = None,
        status: Optional[WithdrawalStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[bytes, str]:
        stmt = select(Withdrawal)
        if user_id is not None:
            stmt = stmt.where(Withdrawal.user_id == user_id)
        if withdrawal_type is not None:
            stmt = stmt.where(Withdrawal.type == withdrawal_type)
        if status is not None:
            stmt = stmt.where(Withdrawal.status == status)
        if start is not None:
            stmt = stmt.where(Withdrawal.created_at >= start)
        if end is not None:
            stmt = stmt.where(Withdrawal.created_at < end)
        stmt = stmt.order_by(desc(Withdrawal.created_at), desc(Withdrawal.id)).limit(
            settings.export_withdrawal_max_rows
        )
        withdrawals: List[Withdrawal] = await self._fetch(db, stmt)

        headers = [
            "Withdrawal No", "User ID", "Type", "Amount", "Fee", "Actual Amount",
            "Status", "Withdraw To", "Reject Reason", "Requested At", "Processed At",
        ]
        rows = [
            [
                w.withdrawal_no,
                w.user_id,
                label(WITHDRAWAL_TYPE_LABELS, w.type),
                money(w.amount),
                money(w.fee),
                money(w.actual_amount),
                label(WITHDRAWAL_STATUS_LABELS, w.status),
                label(WITHDRAW_TO_LABELS, w.withdraw_to),
                w.reject_reason or "",
                timestamp(w.created_at),
                timestamp(w.processed_at),
            ]
            for w in withdrawals
        ]
        content = self._render(headers, rows)
        logger.info("Exported %s withdrawals", len(rows))
        return content, self._filename("withdrawals")

    async def export_transactions(
        self,
        db: AsyncSession,
        user_id: Optional[int] = None,
        transaction_type: Optional[WalletTransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[bytes, str]:
        stmt = select(WalletTransaction)
        if user_id is not None:
            stmt = stmt.where(WalletTransaction.user_id == user_id)
        if transaction_type is not None:
            stmt = stmt.where(WalletTransaction.type == transaction_type)
        if start is not None:
            stmt = stmt.where(WalletTransaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(WalletTransaction.created_at < end)
        stmt = stmt.order_by(desc(WalletTransaction.created_at), desc(WalletTransaction.id)).limit(
            settings.export_transaction_max_rows
        )
        transactions: List[WalletTransaction] = await self._fetch(db, stmt)

        headers = [
            "User ID", "Type", "Amount", "Balance Before", "Balance After",
            "Order No", "Remark", "Created At",
        ]
        rows = [
            [
                tx.user_id,
                label(TRANSACTION_TYPE_LABELS, tx.type),
                money(tx.amount),
                money(tx.balance_before),
                money(tx.balance_after),
                tx.order_no or "",
                tx.remark or "",
                timestamp(tx.created_at),
            ]
            for tx in transactions
        ]
        content = self._render(headers, rows)
        logger.info("Exported %s wallet transactions", len(rows))
        return content, self._filename("transactions")

    async def export_daily_revenue(self, db: AsyncSession, start_date: date, end_date: date) -> Tuple[bytes, str]:
        try:
            reports = await self.statistics.get_daily_revenue_report(db, start_date, end_date)
        except AppException as exc:
            if exc.status_code < 500:
                raise
            raise ExportError(exc) from exc

        headers = [
            "Date", "Rental Revenue", "Rental Orders", "Hotel Revenue", "Hotel Orders",
            "Mall Revenue", "Mall Orders", "Total Revenue", "Total Orders",
            "Refund Amount", "Refund Count", "Net Revenue",
        ]
        rows = [
            [
                r.date,
                money(r.rental_revenue), r.rental_orders,
                money(r.hotel_revenue), r.hotel_orders,
                money(r.mall_revenue), r.mall_orders,
                money(r.total_revenue), r.total_orders,
                money(r.refund_amount), r.refund_count,
                money(r.net_revenue),
            ]
            for r in reports
        ]
        content = self._render(headers, rows)
        filename = f"daily_revenue_{start_date.isoformat()}_{end_date.isoformat()}.csv"
        return content, filename

    async def export_merchant_settlement(
        self,
        db: AsyncSession,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> Tuple[bytes, str]:
        try:
            reports = await self.statistics.get_merchant_settlement_report(db, period_start, period_end)
        except AppException as exc:
            if exc.status_code < 500:
                raise
            raise ExportError(exc) from exc

        headers = [
            "Merchant ID", "Merchant Name", "Commission Rate", "Total Revenue",
            "Platform Fee", "Settled Amount", "Total Orders",
        ]
        rows = [
            [
                r.merchant_id,
                r.merchant_name,
                "%.2f%%" % (r.commission_rate * 100),
                money(r.total_revenue),
                money(r.total_fee),
                money(r.settled_amount),
                r.total_orders,
            ]
            for r in reports
        ]
        content = self._render(headers, rows)
        return content, self._filename("merchant_settlement")


export_service = ExportService()

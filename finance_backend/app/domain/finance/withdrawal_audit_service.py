"""
Withdrawal Audit Service (Domain Logic).

State machine:

    PENDING -> APPROVED -> PROCESSING -> SUCCESS
    PENDING -> REJECTED

`complete_withdrawal` also accepts APPROVED, for payouts that skip the
PROCESSING step. Every status change is a conditional update on the expected
status, so a concurrent transition loses cleanly instead of applying twice.

Funds were frozen when the request was created:
- reject:   frozen -> available (distributor commission or wallet balance)
- complete: frozen -= amount, withdrawn += actual_amount, plus a WITHDRAW
            wallet ledger row
A frozen bucket never goes negative; a shortfall aborts the transaction.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, update, desc, asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.clock import Clock, system_clock
from finance_backend.app.core.exceptions import (
    AppException, DatabaseError, FrozenBalanceError, InvalidParameterError,
    WithdrawalNotFoundError, WithdrawalStatusError,
)
from finance_backend.app.core.money import ZERO, to_money
from finance_backend.app.db.session import transaction
from finance_backend.app.domain.finance.batch import BatchItemResult, BatchResult
from finance_backend.app.models.distribution import Distributor
from finance_backend.app.models.finance_enums import (
    WalletTransactionType, WithdrawalStatus, WithdrawalType,
)
from finance_backend.app.models.user import UserWallet, WalletTransaction
from finance_backend.app.models.withdrawal import Withdrawal
from finance_backend.app.schemas.analytics import WithdrawalSummary
from finance_backend.app.services import ledger_queries
from finance_backend.app.services.audit import FinanceAuditAction, record_event

logger = logging.getLogger(__name__)

COMPLETABLE_STATUSES = (WithdrawalStatus.PROCESSING, WithdrawalStatus.APPROVED)


class WithdrawalAuditService:

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock

    # Guards

    async def get_withdrawal(self, db: AsyncSession, withdrawal_id: int) -> Withdrawal:
        try:
            withdrawal = await db.get(Withdrawal, withdrawal_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        if withdrawal is None:
            raise WithdrawalNotFoundError(withdrawal_id)
        return withdrawal

    @staticmethod
    def _require_status(withdrawal: Withdrawal, allowed: Sequence[WithdrawalStatus], action: str) -> None:
        if withdrawal.status not in allowed:
            raise WithdrawalStatusError(
                f"Cannot {action} a withdrawal in status {withdrawal.status.value}",
                details={
                    "withdrawal_id": withdrawal.id,
                    "status": withdrawal.status.value,
                    "allowed": [s.value for s in allowed],
                },
            )

    @staticmethod
    async def _transition(
        db: AsyncSession,
        withdrawal_id: int,
        expected: Iterable[WithdrawalStatus],
        **values,
    ) -> None:
        """Conditional status update; zero rows means someone else moved it first."""
        expected = tuple(expected)
        result = await db.execute(
            update(Withdrawal)
            .where(Withdrawal.id == withdrawal_id, Withdrawal.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise WithdrawalStatusError(
                "Withdrawal status changed concurrently",
                details={"withdrawal_id": withdrawal_id, "expected": [s.value for s in expected]},
            )

    # Fund moves

    @staticmethod
    async def _release_to_available(db: AsyncSession, withdrawal_type: WithdrawalType, user_id: int, amount) -> None:
        """frozen -= amount, available += amount."""
        if withdrawal_type == WithdrawalType.COMMISSION:
            stmt = (
                update(Distributor)
                .where(Distributor.user_id == user_id, Distributor.frozen_commission >= amount)
                .values(
                    available_commission=Distributor.available_commission + amount,
                    frozen_commission=Distributor.frozen_commission - amount,
                )
            )
        else:
            stmt = (
                update(UserWallet)
                .where(UserWallet.user_id == user_id, UserWallet.frozen_balance >= amount)
                .values(
                    balance=UserWallet.balance + amount,
                    frozen_balance=UserWallet.frozen_balance - amount,
                )
            )
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise FrozenBalanceError(
                "Frozen balance cannot cover the withdrawal amount",
                details={"user_id": user_id, "type": withdrawal_type.value, "amount": str(amount)},
            )

    @staticmethod
    async def _pay_out(db: AsyncSession, withdrawal_type: WithdrawalType, user_id: int, amount, actual_amount) -> None:
        """frozen -= amount, withdrawn += actual_amount."""
        if withdrawal_type == WithdrawalType.COMMISSION:
            stmt = (
                update(Distributor)
                .where(Distributor.user_id == user_id, Distributor.frozen_commission >= amount)
                .values(
                    frozen_commission=Distributor.frozen_commission - amount,
                    withdrawn_commission=Distributor.withdrawn_commission + actual_amount,
                )
            )
        else:
            stmt = (
                update(UserWallet)
                .where(UserWallet.user_id == user_id, UserWallet.frozen_balance >= amount)
                .values(
                    frozen_balance=UserWallet.frozen_balance - amount,
                    total_withdrawn=UserWallet.total_withdrawn + actual_amount,
                )
            )
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise FrozenBalanceError(
                "Frozen balance cannot cover the withdrawal amount",
                details={"user_id": user_id, "type": withdrawal_type.value, "amount": str(amount)},
            )

    # Transitions

    async def approve_withdrawal(self, db: AsyncSession, withdrawal_id: int, operator_id: Optional[int] = None) -> Withdrawal:
        """PENDING -> APPROVED. No money moves."""
        withdrawal = await self.get_withdrawal(db, withdrawal_id)
        self._require_status(withdrawal, (WithdrawalStatus.PENDING,), "approve")

        try:
            async with transaction(db):
                await self._transition(
                    db, withdrawal_id, (WithdrawalStatus.PENDING,),
                    status=WithdrawalStatus.APPROVED, operator_id=operator_id,
                )
                await record_event(
                    db, FinanceAuditAction.WITHDRAWAL_APPROVED,
                    operator_id=operator_id, target_type="withdrawal", target_id=withdrawal_id,
                )
            await db.refresh(withdrawal)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info("Withdrawal %s approved by operator %s", withdrawal.withdrawal_no, operator_id)
        return withdrawal

    async def reject_withdrawal(
        self, db: AsyncSession, withdrawal_id: int, operator_id: Optional[int] = None, reason: str = ""
    ) -> Withdrawal:
        """PENDING -> REJECTED, returning the frozen amount to the available bucket."""
        withdrawal = await self.get_withdrawal(db, withdrawal_id)
        self._require_status(withdrawal, (WithdrawalStatus.PENDING,), "reject")

        withdrawal_type = withdrawal.type
        user_id = withdrawal.user_id
        amount = withdrawal.amount

        try:
            async with transaction(db):
                await self._transition(
                    db, withdrawal_id, (WithdrawalStatus.PENDING,),
                    status=WithdrawalStatus.REJECTED,
                    reject_reason=reason,
                    operator_id=operator_id,
                    processed_at=self.clock.now(),
                )
                await self._release_to_available(db, withdrawal_type, user_id, amount)
                await record_event(
                    db, FinanceAuditAction.WITHDRAWAL_REJECTED,
                    operator_id=operator_id, target_type="withdrawal", target_id=withdrawal_id,
                    metadata={"reason": reason, "amount": str(amount)},
                )
            await db.refresh(withdrawal)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info("Withdrawal %s rejected by operator %s: %s", withdrawal.withdrawal_no, operator_id, reason)
        return withdrawal

    async def process_withdrawal(self, db: AsyncSession, withdrawal_id: int, operator_id: Optional[int] = None) -> Withdrawal:
        """APPROVED -> PROCESSING (payout submitted). No money moves."""
        withdrawal = await self.get_withdrawal(db, withdrawal_id)
        self._require_status(withdrawal, (WithdrawalStatus.APPROVED,), "process")

        try:
            async with transaction(db):
                await self._transition(
                    db, withdrawal_id, (WithdrawalStatus.APPROVED,),
                    status=WithdrawalStatus.PROCESSING, operator_id=operator_id,
                )
                await record_event(
                    db, FinanceAuditAction.WITHDRAWAL_PROCESSING,
                    operator_id=operator_id, target_type="withdrawal", target_id=withdrawal_id,
                )
            await db.refresh(withdrawal)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info("Withdrawal %s processing, operator %s", withdrawal.withdrawal_no, operator_id)
        return withdrawal

    async def complete_withdrawal(self, db: AsyncSession, withdrawal_id: int, operator_id: Optional[int] = None) -> Withdrawal:
        """PROCESSING or APPROVED -> SUCCESS, paying the frozen amount out."""
        withdrawal = await self.get_withdrawal(db, withdrawal_id)
        self._require_status(withdrawal, COMPLETABLE_STATUSES, "complete")

        withdrawal_type = withdrawal.type
        withdrawal_no = withdrawal.withdrawal_no
        user_id = withdrawal.user_id
        amount = withdrawal.amount
        actual_amount = withdrawal.actual_amount

        try:
            async with transaction(db):
                await self._transition(
                    db, withdrawal_id, COMPLETABLE_STATUSES,
                    status=WithdrawalStatus.SUCCESS,
                    operator_id=operator_id,
                    processed_at=self.clock.now(),
                )
                await self._pay_out(db, withdrawal_type, user_id, amount, actual_amount)

                # Completion does not touch the available balance.
                balance = (await db.execute(
                    select(UserWallet.balance).where(UserWallet.user_id == user_id)
                )).scalar()
                balance = to_money(balance) if balance is not None else ZERO
                db.add(WalletTransaction(
                    user_id=user_id,
                    type=WalletTransactionType.WITHDRAW,
                    amount=actual_amount,
                    balance_before=balance,
                    balance_after=balance,
                    order_no=withdrawal_no,
                    remark="Withdrawal paid out",
                    created_at=self.clock.now(),
                ))
                await record_event(
                    db, FinanceAuditAction.WITHDRAWAL_COMPLETED,
                    operator_id=operator_id, target_type="withdrawal", target_id=withdrawal_id,
                    metadata={"amount": str(amount), "actual_amount": str(actual_amount)},
                )
            await db.refresh(withdrawal)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info("Withdrawal %s completed by operator %s (paid %s)", withdrawal_no, operator_id, actual_amount)
        return withdrawal

    # Batches

    async def _run_batch(self, db: AsyncSession, ids: Sequence[int], action: str, operation) -> BatchResult:
        batch = BatchResult()
        for withdrawal_id in ids:
            try:
                await operation(withdrawal_id)
                batch.items.append(BatchItemResult.ok(withdrawal_id))
            except AppException as exc:
                await db.rollback()
                logger.warning("Batch %s skipped withdrawal %s: %s", action, withdrawal_id, exc.message)
                batch.items.append(BatchItemResult.from_error(withdrawal_id, exc))
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.warning("Batch %s skipped withdrawal %s: %s", action, withdrawal_id, exc)
                batch.items.append(BatchItemResult.from_error(withdrawal_id, DatabaseError(exc)))
        logger.info(
            "Batch %s: %s succeeded, %s failed", action, len(batch.succeeded), len(batch.failed)
        )
        return batch

    async def batch_approve(self, db: AsyncSession, ids: Sequence[int], operator_id: Optional[int] = None) -> BatchResult:
        return await self._run_batch(
            db, ids, "approve", lambda wid: self.approve_withdrawal(db, wid, operator_id)
        )

    async def batch_reject(
        self, db: AsyncSession, ids: Sequence[int], operator_id: Optional[int] = None, reason: str = ""
    ) -> BatchResult:
        return await self._run_batch(
            db, ids, "reject", lambda wid: self.reject_withdrawal(db, wid, operator_id, reason)
        )

    async def batch_complete(self, db: AsyncSession, ids: Sequence[int], operator_id: Optional[int] = None) -> BatchResult:
        return await self._run_batch(
            db, ids, "complete", lambda wid: self.complete_withdrawal(db, wid, operator_id)
        )

    # Queries

    async def list_withdrawals(
        self,
        db: AsyncSession,
        user_id: Optional[int] = None,
        withdrawal_type: Optional[WithdrawalType] = None,
        status: Optional[WithdrawalStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Withdrawal], int]:
        """Filtered, newest-first page of withdrawals (created_at in [start, end)) and the total count."""
        if page < 1 or page_size < 1:
            raise InvalidParameterError("page and page_size must be positive")

        conditions = []
        if user_id is not None:
            conditions.append(Withdrawal.user_id == user_id)
        if withdrawal_type is not None:
            conditions.append(Withdrawal.type == withdrawal_type)
        if status is not None:
            conditions.append(Withdrawal.status == status)
        if start is not None:
            conditions.append(Withdrawal.created_at >= start)
        if end is not None:
            conditions.append(Withdrawal.created_at < end)

        try:
            total = (await db.execute(select(func.count(Withdrawal.id)).where(*conditions))).scalar() or 0
            result = await db.execute(
                select(Withdrawal)
                .where(*conditions)
                .order_by(desc(Withdrawal.created_at), desc(Withdrawal.id))
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return list(result.scalars().all()), total

    async def count_pending(self, db: AsyncSession) -> int:
        try:
            result = await db.execute(
                select(func.count(Withdrawal.id)).where(Withdrawal.status == WithdrawalStatus.PENDING)
            )
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return result.scalar() or 0

    async def _oldest_in_status(self, db: AsyncSession, status: WithdrawalStatus, limit: int) -> List[Withdrawal]:
        try:
            result = await db.execute(
                select(Withdrawal)
                .where(Withdrawal.status == status)
                .order_by(asc(Withdrawal.created_at), asc(Withdrawal.id))
                .limit(limit)
            )
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return list(result.scalars().all())

    async def list_pending(self, db: AsyncSession, limit: int = 50) -> List[Withdrawal]:
        """Oldest pending withdrawals first (audit queue)."""
        return await self._oldest_in_status(db, WithdrawalStatus.PENDING, limit)

    async def list_approved(self, db: AsyncSession, limit: int = 50) -> List[Withdrawal]:
        """Oldest approved withdrawals first (payout queue)."""
        return await self._oldest_in_status(db, WithdrawalStatus.APPROVED, limit)

    async def get_withdrawal_summary(
        self,
        db: AsyncSession,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> WithdrawalSummary:
        """Counts and amounts by status; every figure uses the same created_at window."""
        try:
            total = await ledger_queries.withdrawal_totals(db, start=start, end=end)
            pending = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.PENDING, start, end)
            success = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.SUCCESS, start, end)
            rejected = await ledger_queries.withdrawal_totals(db, WithdrawalStatus.REJECTED, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return WithdrawalSummary(
            total_withdrawals=total.count,
            total_amount=total.amount,
            pending_count=pending.count,
            pending_amount=pending.amount,
            approved_count=success.count,
            approved_amount=success.actual_amount,
            rejected_count=rejected.count,
        )


withdrawal_audit_service = WithdrawalAuditService()

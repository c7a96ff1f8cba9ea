"""
Settlement Service (Domain Logic).

Computes payout batches for merchants and distributors over an inclusive
date period, and drives them through PENDING -> PROCESSING -> COMPLETED.

Rules:
- One settlement per (type, target_id, period_start, period_end). The
  pre-check gives a clean error; the unique constraint is what holds under
  concurrency, and its violation is reported the same way.
- Merchant: fee = total x commission_rate (half-up to cents), actual = total - fee.
- Distributor: fee = 0, actual = total.
- Processing is a single transaction: a failure leaves the settlement PENDING
  and every commission and balance untouched.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.clock import Clock, system_clock
from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import (
    AppException, DatabaseError, DistributorNotFoundError, DuplicateRecordError,
    InvalidOperationError, InvalidParameterError, MerchantNotFoundError,
    SettlementNotFoundError,
)
from finance_backend.app.core.money import ZERO, quantize, to_money
from finance_backend.app.core.numbering import NumberGenerator, default_number_generator
from finance_backend.app.db.session import transaction
from finance_backend.app.domain.finance.batch import BatchItemResult, GenerationReport, SettlementDetail
from finance_backend.app.models.distribution import Commission, Distributor
from finance_backend.app.models.finance_enums import (
    CommissionStatus, MerchantStatus, OrderStatus, SettlementStatus, SettlementType,
)
from finance_backend.app.models.merchant import Device, Merchant, Venue
from finance_backend.app.models.order import Order, Rental
from finance_backend.app.models.settlement import Settlement
from finance_backend.app.models.user import User
from finance_backend.app.services import ledger_queries
from finance_backend.app.services.audit import FinanceAuditAction, record_event

logger = logging.getLogger(__name__)


@dataclass
class SettlementAmounts:
    total_amount: Decimal
    fee: Decimal
    actual_amount: Decimal
    order_count: int


def parse_settlement_type(value) -> SettlementType:
    try:
        return SettlementType(value)
    except ValueError:
        raise InvalidParameterError(
            f"Unknown settlement type: {value}",
            details={"type": str(value)},
        )


def validate_period(period_start: date, period_end: date) -> None:
    if period_start > period_end:
        raise InvalidParameterError(
            "period_start must not be after period_end",
            details={"period_start": period_start.isoformat(), "period_end": period_end.isoformat()},
        )


class SettlementService:
    """
    Settlement engine.

    The clock and the number generator are injected so tests can pin
    timestamps and settlement numbers.
    """

    def __init__(self, clock: Clock = system_clock, numbers: NumberGenerator = default_number_generator):
        self.clock = clock
        self.numbers = numbers

    # Amount computation

    async def _merchant_amounts(
        self, db: AsyncSession, merchant_id: int, commission_rate, period_start: date, period_end: date
    ) -> SettlementAmounts:
        """Completed orders fulfilled on any device in any venue of the merchant."""
        start, end = ledger_queries.period_bounds(period_start, period_end)
        stmt = (
            select(func.coalesce(func.sum(Order.actual_amount), 0), func.count(Order.id))
            .select_from(Order)
            .join(Rental, Rental.order_id == Order.id)
            .join(Device, Device.id == Rental.device_id)
            .join(Venue, Venue.id == Device.venue_id)
            .where(
                Venue.merchant_id == merchant_id,
                Order.status == OrderStatus.COMPLETED,
                Order.completed_at >= start,
                Order.completed_at < end,
            )
        )
        total, count = (await db.execute(stmt)).one()
        total = to_money(total)
        fee = quantize(total * Decimal(str(commission_rate or 0)))
        return SettlementAmounts(total_amount=total, fee=fee, actual_amount=total - fee, order_count=count or 0)

    async def _distributor_amounts(
        self, db: AsyncSession, distributor_id: int, period_start: date, period_end: date
    ) -> SettlementAmounts:
        """Pending commissions created in the period."""
        start, end = ledger_queries.period_bounds(period_start, period_end)
        stmt = select(func.coalesce(func.sum(Commission.amount), 0), func.count(Commission.id)).where(
            Commission.distributor_id == distributor_id,
            Commission.status == CommissionStatus.PENDING,
            Commission.created_at >= start,
            Commission.created_at < end,
        )
        total, count = (await db.execute(stmt)).one()
        total = to_money(total)
        return SettlementAmounts(total_amount=total, fee=ZERO, actual_amount=total, order_count=count or 0)

    async def compute_amounts(
        self,
        db: AsyncSession,
        settlement_type: SettlementType,
        target_id: int,
        period_start: date,
        period_end: date,
    ) -> SettlementAmounts:
        """
        Resolve the target and compute what a settlement for it would hold.

        Raises:
            MerchantNotFoundError / DistributorNotFoundError: target does not exist
            DatabaseError: the aggregate query failed
        """
        try:
            if settlement_type == SettlementType.MERCHANT:
                row = (await db.execute(
                    select(Merchant.id, Merchant.commission_rate).where(Merchant.id == target_id)
                )).one_or_none()
                if row is None:
                    raise MerchantNotFoundError(target_id)
                return await self._merchant_amounts(db, row.id, row.commission_rate, period_start, period_end)

            exists = (await db.execute(select(Distributor.id).where(Distributor.id == target_id))).scalar()
            if exists is None:
                raise DistributorNotFoundError(target_id)
            return await self._distributor_amounts(db, target_id, period_start, period_end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

    # Creation

    async def exists_for_period(
        self,
        db: AsyncSession,
        settlement_type: SettlementType,
        target_id: int,
        period_start: date,
        period_end: date,
    ) -> bool:
        stmt = select(Settlement.id).where(
            Settlement.type == settlement_type,
            Settlement.target_id == target_id,
            Settlement.period_start == period_start,
            Settlement.period_end == period_end,
        )
        return (await db.execute(stmt)).first() is not None

    async def _insert(
        self,
        db: AsyncSession,
        settlement_type: SettlementType,
        target_id: int,
        period_start: date,
        period_end: date,
        amounts: SettlementAmounts,
        operator_id: Optional[int],
    ) -> Settlement:
        settlement = Settlement(
            settlement_no=self.numbers.generate(settings.settlement_no_prefix),
            type=settlement_type,
            target_id=target_id,
            period_start=period_start,
            period_end=period_end,
            total_amount=amounts.total_amount,
            fee=amounts.fee,
            actual_amount=amounts.actual_amount,
            order_count=amounts.order_count,
            status=SettlementStatus.PENDING,
            operator_id=operator_id,
            created_at=self.clock.now(),
        )
        try:
            async with transaction(db):
                db.add(settlement)
                await db.flush()
                await record_event(
                    db,
                    FinanceAuditAction.SETTLEMENT_CREATED,
                    operator_id=operator_id,
                    target_type="settlement",
                    target_id=settlement.id,
                    metadata={
                        "settlement_no": settlement.settlement_no,
                        "type": settlement_type.value,
                        "target_id": target_id,
                        "total_amount": str(amounts.total_amount),
                    },
                )
        except IntegrityError as exc:
            # Either the period tuple or the settlement number collided.
            if await self.exists_for_period(db, settlement_type, target_id, period_start, period_end):
                raise DuplicateRecordError(
                    "Settlement already exists for this period",
                    details=_period_details(settlement_type, target_id, period_start, period_end),
                ) from exc
            raise DatabaseError(exc) from exc
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info(
            "Settlement %s created: %s #%s %s..%s total=%s fee=%s actual=%s",
            settlement.settlement_no, settlement_type.value, target_id,
            period_start, period_end, amounts.total_amount, amounts.fee, amounts.actual_amount,
        )
        return settlement

    async def create_settlement(
        self,
        db: AsyncSession,
        settlement_type,
        target_id: int,
        period_start: date,
        period_end: date,
        operator_id: Optional[int] = None,
    ) -> Settlement:
        """
        Create a PENDING settlement for one merchant or distributor.

        A target with nothing to settle still gets a zero settlement.

        Raises:
            InvalidParameterError: unknown type or inverted period
            MerchantNotFoundError / DistributorNotFoundError: unknown target
            DuplicateRecordError: a settlement already exists for the period
            DatabaseError: persistence failure
        """
        settlement_type = parse_settlement_type(settlement_type)
        validate_period(period_start, period_end)

        amounts = await self.compute_amounts(db, settlement_type, target_id, period_start, period_end)

        try:
            duplicate = await self.exists_for_period(db, settlement_type, target_id, period_start, period_end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        if duplicate:
            raise DuplicateRecordError(
                "Settlement already exists for this period",
                details=_period_details(settlement_type, target_id, period_start, period_end),
            )

        return await self._insert(db, settlement_type, target_id, period_start, period_end, amounts, operator_id)

    # Processing

    async def process_settlement(self, db: AsyncSession, settlement_id: int, operator_id: Optional[int] = None) -> Settlement:
        """
        Pay out a PENDING settlement.

        For distributor settlements, the in-period pending commissions are
        marked SETTLED and the distributor's available commission is credited
        with actual_amount. All of it commits together or not at all.

        Raises:
            SettlementNotFoundError: unknown id
            InvalidOperationError: settlement is not PENDING
            DatabaseError: persistence failure (everything rolled back)
        """
        settlement = await self.get_settlement(db, settlement_id)
        if settlement.status != SettlementStatus.PENDING:
            raise InvalidOperationError(
                f"Settlement status is {settlement.status.value}, expected pending",
                details={"settlement_id": settlement_id, "status": settlement.status.value},
            )

        settlement_type = settlement.type
        target_id = settlement.target_id
        actual_amount = settlement.actual_amount
        start, end = ledger_queries.period_bounds(settlement.period_start, settlement.period_end)
        now = self.clock.now()

        try:
            async with transaction(db):
                result = await db.execute(
                    update(Settlement)
                    .where(Settlement.id == settlement_id, Settlement.status == SettlementStatus.PENDING)
                    .values(status=SettlementStatus.PROCESSING, operator_id=operator_id)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidOperationError(
                        "Settlement is no longer pending",
                        details={"settlement_id": settlement_id},
                    )

                settled_commissions = 0
                if settlement_type == SettlementType.DISTRIBUTOR:
                    result = await db.execute(
                        update(Commission)
                        .where(
                            Commission.distributor_id == target_id,
                            Commission.status == CommissionStatus.PENDING,
                            Commission.created_at >= start,
                            Commission.created_at < end,
                        )
                        .values(status=CommissionStatus.SETTLED, settled_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    settled_commissions = result.rowcount

                    result = await db.execute(
                        update(Distributor)
                        .where(Distributor.id == target_id)
                        .values(available_commission=Distributor.available_commission + actual_amount)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise DistributorNotFoundError(target_id)

                await db.execute(
                    update(Settlement)
                    .where(Settlement.id == settlement_id)
                    .values(status=SettlementStatus.COMPLETED, settled_at=now)
                    .execution_options(synchronize_session=False)
                )
                await record_event(
                    db,
                    FinanceAuditAction.SETTLEMENT_PROCESSED,
                    operator_id=operator_id,
                    target_type="settlement",
                    target_id=settlement_id,
                    metadata={
                        "actual_amount": str(actual_amount),
                        "settled_commissions": settled_commissions,
                    },
                )
            await db.refresh(settlement)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        logger.info(
            "Settlement %s completed by operator %s (actual=%s)",
            settlement.settlement_no, operator_id, actual_amount,
        )
        return settlement

    # Batch generation

    async def generate_merchant_settlements(
        self, db: AsyncSession, period_start: date, period_end: date, operator_id: Optional[int] = None
    ) -> GenerationReport:
        """Create settlements for every active merchant with revenue in the period."""
        validate_period(period_start, period_end)
        try:
            targets = (await db.execute(
                select(Merchant.id).where(Merchant.status == MerchantStatus.ACTIVE).order_by(Merchant.id)
            )).scalars().all()
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return await self._generate(db, SettlementType.MERCHANT, list(targets), period_start, period_end, operator_id)

    async def generate_distributor_settlements(
        self, db: AsyncSession, period_start: date, period_end: date, operator_id: Optional[int] = None
    ) -> GenerationReport:
        """Create settlements for every distributor with pending commissions in the period."""
        validate_period(period_start, period_end)
        start, end = ledger_queries.period_bounds(period_start, period_end)
        try:
            targets = await ledger_queries.distributors_with_pending_commissions(db, start, end)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return await self._generate(db, SettlementType.DISTRIBUTOR, targets, period_start, period_end, operator_id)

    async def generate_settlements(
        self, db: AsyncSession, settlement_type, period_start: date, period_end: date, operator_id: Optional[int] = None
    ) -> GenerationReport:
        settlement_type = parse_settlement_type(settlement_type)
        if settlement_type == SettlementType.MERCHANT:
            return await self.generate_merchant_settlements(db, period_start, period_end, operator_id)
        return await self.generate_distributor_settlements(db, period_start, period_end, operator_id)

    async def _generate(
        self,
        db: AsyncSession,
        settlement_type: SettlementType,
        target_ids: List[int],
        period_start: date,
        period_end: date,
        operator_id: Optional[int],
    ) -> GenerationReport:
        """
        Sequential best-effort loop: one transaction per target, a failing
        target is recorded and the loop moves on.
        """
        report = GenerationReport()
        created_ids = []

        for target_id in target_ids:
            try:
                if await self.exists_for_period(db, settlement_type, target_id, period_start, period_end):
                    report.skipped.append(BatchItemResult.ok(target_id, "Settlement already exists for this period"))
                    continue

                amounts = await self.compute_amounts(db, settlement_type, target_id, period_start, period_end)
                if amounts.total_amount == 0:
                    report.skipped.append(BatchItemResult.ok(target_id, "Nothing to settle"))
                    continue

                settlement = await self._insert(
                    db, settlement_type, target_id, period_start, period_end, amounts, operator_id
                )
                created_ids.append(settlement.id)
            except AppException as exc:
                await db.rollback()
                logger.warning(
                    "Skipping %s #%s in settlement generation: %s", settlement_type.value, target_id, exc.message
                )
                if isinstance(exc, DuplicateRecordError):
                    report.skipped.append(BatchItemResult.ok(target_id, exc.message))
                else:
                    report.failed.append(BatchItemResult.from_error(target_id, exc))
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.warning("Skipping %s #%s in settlement generation: %s", settlement_type.value, target_id, exc)
                report.failed.append(BatchItemResult.from_error(target_id, DatabaseError(exc)))

        if created_ids:
            try:
                result = await db.execute(
                    select(Settlement).where(Settlement.id.in_(created_ids)).order_by(Settlement.id)
                )
            except SQLAlchemyError as exc:
                raise DatabaseError(exc) from exc
            report.created = list(result.scalars().all())

        logger.info(
            "Generated %s %s settlements for %s..%s (%s skipped, %s failed)",
            len(report.created), settlement_type.value, period_start, period_end,
            len(report.skipped), len(report.failed),
        )
        return report

    # Queries

    async def get_settlement(self, db: AsyncSession, settlement_id: int) -> Settlement:
        try:
            settlement = await db.get(Settlement, settlement_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)
        return settlement

    async def list_settlements(
        self,
        db: AsyncSession,
        settlement_type: Optional[SettlementType] = None,
        target_id: Optional[int] = None,
        status: Optional[SettlementStatus] = None,
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Settlement], int]:
        """Filtered, newest-first page of settlements and the total match count."""
        if page < 1 or page_size < 1:
            raise InvalidParameterError("page and page_size must be positive")

        conditions = []
        if settlement_type is not None:
            conditions.append(Settlement.type == settlement_type)
        if target_id is not None:
            conditions.append(Settlement.target_id == target_id)
        if status is not None:
            conditions.append(Settlement.status == status)
        if period_start is not None:
            conditions.append(Settlement.period_start >= period_start)
        if period_end is not None:
            conditions.append(Settlement.period_end <= period_end)

        try:
            total = (await db.execute(select(func.count(Settlement.id)).where(*conditions))).scalar() or 0
            result = await db.execute(
                select(Settlement)
                .where(*conditions)
                .order_by(desc(Settlement.created_at), desc(Settlement.id))
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc
        return list(result.scalars().all()), total

    async def get_settlement_detail(self, db: AsyncSession, settlement_id: int) -> SettlementDetail:
        """Settlement plus a display name for its target; empty when the target is gone."""
        settlement = await self.get_settlement(db, settlement_id)
        target_name = ""

        try:
            if settlement.type == SettlementType.MERCHANT:
                name = (await db.execute(select(Merchant.name).where(Merchant.id == settlement.target_id))).scalar()
                target_name = name or ""
            else:
                row = (await db.execute(
                    select(Distributor.id, User.nickname)
                    .join(User, User.id == Distributor.user_id)
                    .where(Distributor.id == settlement.target_id)
                )).one_or_none()
                if row is not None:
                    target_name = f"{row.nickname or ''} (ID: {row.id})"
        except SQLAlchemyError as exc:
            raise DatabaseError(exc) from exc

        return SettlementDetail(settlement=settlement, target_name=target_name)


def _period_details(settlement_type: SettlementType, target_id: int, period_start: date, period_end: date) -> dict:
    return {
        "type": settlement_type.value,
        "target_id": target_id,
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
    }


settlement_service = SettlementService()

"""
Finance statistics tests.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from finance_backend.app.core.exceptions import InvalidParameterError
from finance_backend.app.models.finance_enums import (
    CommissionStatus, OrderStatus, OrderType, PaymentStatus, SettlementType, WalletTransactionType,
    WithdrawalStatus,
)
from finance_backend.app.models.user import WalletTransaction
from finance_backend.app.services import ledger_queries

DAY1 = datetime(2024, 3, 1, 9, 0)
DAY2 = datetime(2024, 3, 2, 15, 0)
DAY3 = datetime(2024, 3, 3, 23, 59)


@pytest.mark.asyncio
async def test_revenue_statistics_has_a_row_for_every_day(db_session, statistics_service, factory):
    user = await factory.user()
    order = await factory.order(user, "50.00", status=OrderStatus.PAID, paid_at=DAY2)
    await factory.payment(order, "50.00", paid_at=DAY2)

    rows = await statistics_service.get_revenue_statistics(db_session, date(2024, 3, 1), date(2024, 3, 3))

    assert [row.date for row in rows] == ["2024-03-01", "2024-03-02", "2024-03-03"]
    assert rows[0].revenue == Decimal("0") and rows[0].orders == 0
    assert rows[1].revenue == Decimal("50.00") and rows[1].orders == 1
    assert rows[2].revenue == Decimal("0") and rows[2].orders == 0


@pytest.mark.asyncio
async def test_revenue_statistics_ignores_failed_payments_and_outside_days(db_session, statistics_service, factory):
    user = await factory.user()
    order = await factory.order(user, "80.00", paid_at=DAY1)
    await factory.payment(order, "80.00", paid_at=DAY1)
    await factory.payment(order, "80.00", paid_at=DAY1, status=PaymentStatus.FAILED)
    await factory.payment(order, "80.00", paid_at=datetime(2024, 3, 4, 0, 0))

    rows = await statistics_service.get_revenue_statistics(db_session, date(2024, 3, 1), date(2024, 3, 3))

    assert sum(row.revenue for row in rows) == Decimal("80.00")


@pytest.mark.asyncio
async def test_inverted_range_is_rejected(db_session, statistics_service):
    with pytest.raises(InvalidParameterError):
        await statistics_service.get_revenue_statistics(db_session, date(2024, 3, 3), date(2024, 3, 1))
    with pytest.raises(InvalidParameterError):
        await statistics_service.get_daily_revenue_report(db_session, date(2024, 3, 3), date(2024, 3, 1))


@pytest.mark.asyncio
async def test_daily_revenue_report_splits_types_and_nets_refunds(db_session, statistics_service, factory):
    user = await factory.user()
    await factory.order(user, "100.00", OrderType.RENTAL, paid_at=DAY2)
    await factory.order(user, "40.00", OrderType.HOTEL, OrderStatus.PAID, paid_at=DAY2)
    await factory.order(user, "20.00", OrderType.MALL, paid_at=DAY3)
    await factory.order(user, "999.00", OrderType.MALL, OrderStatus.CANCELLED, paid_at=DAY3)

    # Refunded on a day without any order revenue
    refunded = await factory.order(user, "15.00", OrderType.RENTAL, OrderStatus.REFUNDED, paid_at=datetime(2024, 2, 20))
    payment = await factory.payment(refunded, "15.00", paid_at=datetime(2024, 2, 20))
    await factory.refund(payment, "15.00", refunded_at=DAY1)

    report = await statistics_service.get_daily_revenue_report(db_session, date(2024, 3, 1), date(2024, 3, 3))
    day1, day2, day3 = report

    assert day1.total_revenue == Decimal("0")
    assert day1.refund_amount == Decimal("15.00")
    assert day1.refund_count == 1
    assert day1.net_revenue == Decimal("-15.00")

    assert day2.rental_revenue == Decimal("100.00")
    assert day2.hotel_revenue == Decimal("40.00")
    assert day2.total_revenue == Decimal("140.00")
    assert day2.total_orders == 2
    assert day2.net_revenue == Decimal("140.00")

    assert day3.mall_revenue == Decimal("20.00")
    assert day3.mall_orders == 1
    assert day3.total_orders == 1


@pytest.mark.asyncio
async def test_order_revenue_by_type(db_session, statistics_service, factory):
    user = await factory.user()
    await factory.order(user, "100.00", OrderType.RENTAL, paid_at=DAY1)
    await factory.order(user, "60.00", OrderType.RENTAL, paid_at=DAY2)
    await factory.order(user, "40.00", OrderType.HOTEL, OrderStatus.PAID, paid_at=DAY2)
    await factory.order(user, "500.00", OrderType.RENTAL, OrderStatus.CANCELLED, paid_at=DAY2)

    rows = await statistics_service.get_order_revenue_by_type(db_session)
    by_type = {row.order_type: row for row in rows}

    assert set(by_type) == {"rental", "hotel"}
    assert by_type["rental"].total_revenue == Decimal("160.00")
    assert by_type["rental"].order_count == 2
    assert by_type["hotel"].total_revenue == Decimal("40.00")

    rows = await statistics_service.get_order_revenue_by_type(db_session, date(2024, 3, 2), date(2024, 3, 2))
    by_type = {row.order_type: row for row in rows}
    assert by_type["rental"].total_revenue == Decimal("60.00")


@pytest.mark.asyncio
async def test_finance_overview(db_session, statistics_service, settlement_service, factory, clock):
    user = await factory.user()
    old = await factory.order(user, "200.00", paid_at=datetime(2024, 1, 10), created_at=datetime(2024, 1, 10))
    old_payment = await factory.payment(old, "200.00", paid_at=datetime(2024, 1, 10))
    await factory.refund(old_payment, "20.00", refunded_at=datetime(2024, 1, 11))

    today = await factory.order(user, "30.00", paid_at=clock.now())
    await factory.payment(today, "30.00", paid_at=clock.now())

    distributor = await factory.distributor(user)
    await factory.commission(distributor, old, "12.00", created_at=datetime(2024, 1, 10),
                             status=CommissionStatus.SETTLED, settled_at=datetime(2024, 1, 20))
    await factory.commission(distributor, today, "3.00", created_at=clock.now())
    await factory.withdrawal(user)
    await factory.withdrawal(user, status=WithdrawalStatus.SUCCESS)

    merchant = await factory.merchant()
    await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 1, 1), date(2024, 1, 31)
    )

    overview = await statistics_service.get_finance_overview(db_session)

    assert overview.total_revenue == Decimal("230.00")
    assert overview.total_refund == Decimal("20.00")
    assert overview.total_commission == Decimal("12.00")
    assert overview.total_settlement == Decimal("0.00")
    assert overview.today_revenue == Decimal("30.00")
    assert overview.today_orders == 1
    assert overview.pending_withdrawals == 1
    assert overview.pending_settlements == 1


@pytest.mark.asyncio
async def test_transaction_statistics(db_session, statistics_service, factory):
    user = await factory.user()
    for tx_type, amount, created_at in (
        (WalletTransactionType.RECHARGE, "100.00", DAY1),
        (WalletTransactionType.RECHARGE, "50.00", DAY2),
        (WalletTransactionType.CONSUME, "30.00", DAY2),
        (WalletTransactionType.WITHDRAW, "10.00", datetime(2024, 4, 1)),
    ):
        db_session.add(WalletTransaction(
            user_id=user.id, type=tx_type, amount=Decimal(amount),
            balance_before=Decimal("0"), balance_after=Decimal("0"), created_at=created_at,
        ))
    await db_session.commit()

    start, end = ledger_queries.period_bounds(date(2024, 3, 1), date(2024, 3, 31))
    stats = await statistics_service.get_transaction_statistics(db_session, start, end)

    assert stats.total_recharge == Decimal("150.00")
    assert stats.total_consume == Decimal("30.00")
    assert stats.total_withdraw == Decimal("0")
    assert stats.total_deposit == Decimal("0")


@pytest.mark.asyncio
async def test_settlement_summary_and_merchant_report(db_session, statistics_service, settlement_service, factory):
    user = await factory.user()
    merchant = await factory.merchant(name="North Station", commission_rate="0.2000")
    device = await factory.device(merchant)
    await factory.rental_order(user, device, "100.00", completed_at=datetime(2024, 3, 5))
    await factory.rental_order(user, device, "50.00", completed_at=datetime(2024, 3, 15))

    first = await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 3, 1), date(2024, 3, 10)
    )
    await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 3, 11), date(2024, 3, 20)
    )
    await settlement_service.process_settlement(db_session, first.id)

    summary = await statistics_service.get_settlement_summary(db_session, SettlementType.MERCHANT)
    assert summary.total_settlements == 2
    assert summary.total_amount == Decimal("150.00")
    assert summary.total_fee == Decimal("30.00")
    assert summary.total_actual == Decimal("120.00")
    assert summary.pending_count == 1
    assert summary.completed_count == 1

    empty = await statistics_service.get_settlement_summary(db_session, SettlementType.DISTRIBUTOR)
    assert empty.total_settlements == 0

    report = await statistics_service.get_merchant_settlement_report(db_session, date(2024, 3, 1), date(2024, 3, 31))
    assert len(report) == 1
    assert report[0].merchant_name == "North Station"
    assert report[0].commission_rate == Decimal("0.2000")
    assert report[0].total_revenue == Decimal("150.00")
    assert report[0].settled_amount == Decimal("120.00")
    assert report[0].total_orders == 2

    narrow = await statistics_service.get_merchant_settlement_report(db_session, date(2024, 3, 1), date(2024, 3, 10))
    assert narrow[0].total_revenue == Decimal("100.00")


@pytest.mark.asyncio
async def test_withdrawal_summary_uses_injected_withdrawal_service(
    db_session, statistics_service, withdrawal_service, factory, mocker
):
    user = await factory.user()
    await factory.withdrawal(user, "25.00")
    spy = mocker.spy(withdrawal_service, "get_withdrawal_summary")

    summary = await statistics_service.get_withdrawal_summary(db_session)

    spy.assert_called_once_with(db_session, None, None)
    assert summary.pending_count == 1
    assert summary.pending_amount == Decimal("25.00")

"""
CSV export tests.
"""

import csv
import io
import pytest
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from finance_backend.app.core.exceptions import ExportError, InvalidParameterError
from finance_backend.app.models.finance_enums import (
    OrderType, SettlementType, WalletTransactionType, WithdrawalStatus, WithdrawalType, WithdrawTo,
)
from finance_backend.app.models.user import WalletTransaction
from finance_backend.app.services.export import BOM, WITHDRAWAL_STATUS_LABELS, label, money, render_csv


def parse(content: bytes):
    assert content.startswith(BOM.encode("utf-8"))
    return list(csv.reader(io.StringIO(content.decode("utf-8-sig"))))


def test_formatting_helpers():
    assert money(Decimal("3")) == "3.00"
    assert money(Decimal("1234.5")) == "1234.50"
    assert money(None) == "0.00"
    assert label(WITHDRAWAL_STATUS_LABELS, WithdrawalStatus.SUCCESS) == "Paid out"
    assert label(WITHDRAWAL_STATUS_LABELS, None) == ""
    assert label({}, WithdrawalStatus.PENDING) == "pending"


def test_render_csv_quotes_embedded_commas():
    rows = parse(render_csv(["Name", "Remark"], [["Acme, Inc.", 'said "hi"']]))
    assert rows == [["Name", "Remark"], ["Acme, Inc.", 'said "hi"']]


@pytest.mark.asyncio
async def test_export_settlements(db_session, export_service, settlement_service, factory):
    user = await factory.user()
    merchant = await factory.merchant()
    device = await factory.device(merchant)
    await factory.rental_order(user, device, "100.00", completed_at=datetime(2024, 3, 5, 8, 0))
    settlement = await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 3, 1), date(2024, 3, 10)
    )
    await settlement_service.process_settlement(db_session, settlement.id)

    content, filename = await export_service.export_settlements(db_session)
    rows = parse(content)

    assert filename == "settlements_20240315103000.csv"
    assert rows[0] == [
        "Settlement No", "Type", "Target ID", "Period Start", "Period End",
        "Total Amount", "Fee", "Actual Amount", "Order Count", "Status",
        "Settled At", "Created At",
    ]
    assert rows[1] == [
        settlement.settlement_no, "Merchant", str(merchant.id), "2024-03-01", "2024-03-10",
        "100.00", "10.00", "90.00", "1", "Completed",
        "2024-03-15 10:30:00", "2024-03-15 10:30:00",
    ]


@pytest.mark.asyncio
async def test_export_settlements_filters(db_session, export_service, settlement_service, factory):
    merchant = await factory.merchant()
    await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 3, 1), date(2024, 3, 10)
    )

    content, _ = await export_service.export_settlements(db_session, settlement_type=SettlementType.DISTRIBUTOR)
    assert len(parse(content)) == 1


@pytest.mark.asyncio
async def test_export_withdrawals_uses_labels(db_session, export_service, factory):
    user = await factory.user()
    await factory.withdrawal(
        user, "100.00", fee="1.50", withdrawal_type=WithdrawalType.WALLET,
        status=WithdrawalStatus.SUCCESS, withdraw_to=WithdrawTo.BANK,
        created_at=datetime(2024, 3, 2, 14, 5, 9),
    )
    await factory.withdrawal(user, created_at=datetime(2024, 3, 1, 8, 0))

    content, filename = await export_service.export_withdrawals(db_session)
    rows = parse(content)

    assert filename == "withdrawals_20240315103000.csv"
    assert len(rows) == 3
    newest = rows[1]
    assert newest[2:9] == ["Wallet balance", "100.00", "1.50", "98.50", "Paid out", "Bank card", ""]
    assert newest[9] == "2024-03-02 14:05:09"
    assert newest[10] == ""
    assert rows[2][2] == "Commission"
    assert rows[2][6] == "Pending review"
    assert rows[2][7] == "WeChat"


@pytest.mark.asyncio
async def test_export_transactions(db_session, export_service, factory):
    user = await factory.user()
    db_session.add(WalletTransaction(
        user_id=user.id, type=WalletTransactionType.RETURN_DEPOSIT, amount=Decimal("99"),
        balance_before=Decimal("1"), balance_after=Decimal("100"),
        order_no="OD123", remark="Deposit back, thanks", created_at=datetime(2024, 3, 3, 9, 0),
    ))
    await db_session.commit()

    content, filename = await export_service.export_transactions(db_session, user_id=user.id)
    rows = parse(content)

    assert filename == "transactions_20240315103000.csv"
    assert rows[1] == [
        str(user.id), "Deposit returned", "99.00", "1.00", "100.00",
        "OD123", "Deposit back, thanks", "2024-03-03 09:00:00",
    ]


@pytest.mark.asyncio
async def test_export_daily_revenue(db_session, export_service, factory):
    user = await factory.user()
    await factory.order(user, "12.34", OrderType.HOTEL, paid_at=datetime(2024, 3, 2, 10, 0))

    content, filename = await export_service.export_daily_revenue(db_session, date(2024, 3, 1), date(2024, 3, 2))
    rows = parse(content)

    assert filename == "daily_revenue_2024-03-01_2024-03-02.csv"
    assert [row[0] for row in rows[1:]] == ["2024-03-01", "2024-03-02"]
    assert rows[1][7] == "0.00"
    assert rows[2][3:5] == ["12.34", "1"]
    assert rows[2][11] == "12.34"


@pytest.mark.asyncio
async def test_export_daily_revenue_rejects_inverted_range(db_session, export_service):
    with pytest.raises(InvalidParameterError):
        await export_service.export_daily_revenue(db_session, date(2024, 3, 2), date(2024, 3, 1))


@pytest.mark.asyncio
async def test_export_merchant_settlement(db_session, export_service, settlement_service, factory):
    merchant = await factory.merchant(name="Harbor Point", commission_rate="0.0750")
    await settlement_service.create_settlement(
        db_session, SettlementType.MERCHANT, merchant.id, date(2024, 3, 1), date(2024, 3, 10)
    )

    content, filename = await export_service.export_merchant_settlement(db_session)
    rows = parse(content)

    assert filename == "merchant_settlement_20240315103000.csv"
    assert rows[1][:3] == [str(merchant.id), "Harbor Point", "7.50%"]


@pytest.mark.asyncio
async def test_query_failure_becomes_export_error(db_session, export_service, mocker):
    mocker.patch.object(db_session, "execute", side_effect=OperationalError("SELECT", {}, Exception("gone")))

    with pytest.raises(ExportError) as exc_info:
        await export_service.export_withdrawals(db_session)
    assert exc_info.value.status_code == 500
    assert exc_info.value.error_code == "ERR_EXPORT_FAILED"

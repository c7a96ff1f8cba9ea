"""
Finance API tests.

Authentication, role checks, error envelopes and the main settlement,
withdrawal, report and export routes.
"""

import pytest
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from finance_backend.app.models.distribution import Distributor
from finance_backend.app.models.finance_enums import AdminRole, WithdrawalStatus
from finance_backend.app.models.withdrawal import Withdrawal

BASE = "/v1/admin/finance"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# Authentication & roles

@pytest.mark.asyncio
async def test_missing_token_is_refused(client):
    response = await client.get(f"{BASE}/overview")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client):
    response = await client.get(f"{BASE}/overview", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_inactive_admin_is_forbidden(client, factory, token_factory):
    admin = await factory.admin(is_active=False)
    response = await client.get(f"{BASE}/overview", headers={"Authorization": f"Bearer {token_factory(admin)}"})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_operator_can_read_but_not_move_money(client, factory, token_factory):
    operator = await factory.admin(role=AdminRole.OPERATOR)
    headers = {"Authorization": f"Bearer {token_factory(operator)}"}
    merchant = await factory.merchant()

    response = await client.get(f"{BASE}/overview", headers=headers)
    assert response.status_code == 200

    response = await client.post(f"{BASE}/settlements", headers=headers, json={
        "type": "merchant", "target_id": merchant.id,
        "period_start": "2024-03-01", "period_end": "2024-03-10",
    })
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_FORBIDDEN"


# Settlements

@pytest.mark.asyncio
async def test_settlement_lifecycle_over_http(client, auth_headers, factory, finance_admin):
    user = await factory.user()
    merchant = await factory.merchant()
    device = await factory.device(merchant)
    await factory.rental_order(user, device, "100.00", completed_at=datetime(2024, 3, 5, 12, 0))
    body = {
        "type": "merchant", "target_id": merchant.id,
        "period_start": "2024-03-01", "period_end": "2024-03-10",
    }

    response = await client.post(f"{BASE}/settlements", headers=auth_headers, json=body)
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"
    assert created["operator_id"] == finance_admin.id
    assert Decimal(created["total_amount"]) == Decimal("100")
    assert Decimal(created["fee"]) == Decimal("10")
    assert Decimal(created["actual_amount"]) == Decimal("90")

    response = await client.post(f"{BASE}/settlements", headers=auth_headers, json=body)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_DUPLICATE_RECORD"

    response = await client.get(f"{BASE}/settlements/{created['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["target_name"] == "Lakeside Lockers"

    response = await client.post(f"{BASE}/settlements/{created['id']}/process", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.post(f"{BASE}/settlements/{created['id']}/process", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INVALID_OPERATION"

    response = await client.get(f"{BASE}/settlements", headers=auth_headers, params={"status": "completed"})
    page = response.json()
    assert page["total"] == 1
    assert page["items"][0]["settlement_no"] == created["settlement_no"]


@pytest.mark.asyncio
async def test_settlement_for_unknown_merchant_is_not_found(client, auth_headers):
    response = await client.post(f"{BASE}/settlements", headers=auth_headers, json={
        "type": "merchant", "target_id": 77,
        "period_start": "2024-03-01", "period_end": "2024-03-10",
    })
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_MERCHANT_NOT_FOUND"


@pytest.mark.asyncio
async def test_settlement_with_inverted_period_is_rejected(client, auth_headers, factory):
    merchant = await factory.merchant()
    response = await client.post(f"{BASE}/settlements", headers=auth_headers, json={
        "type": "merchant", "target_id": merchant.id,
        "period_start": "2024-03-10", "period_end": "2024-03-01",
    })
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_PARAM_001"


@pytest.mark.asyncio
async def test_unknown_settlement_is_not_found(client, auth_headers):
    response = await client.get(f"{BASE}/settlements/999", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_SETTLEMENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_generate_settlements(client, auth_headers, factory):
    user = await factory.user()
    merchant = await factory.merchant()
    device = await factory.device(merchant)
    await factory.rental_order(user, device, "40.00", completed_at=datetime(2024, 3, 5, 12, 0))
    quiet = await factory.merchant(name="Quiet")

    response = await client.post(f"{BASE}/settlements/generate", headers=auth_headers, json={
        "type": "merchant", "period_start": "2024-03-01", "period_end": "2024-03-10",
    })
    assert response.status_code == 200
    report = response.json()
    assert [s["target_id"] for s in report["created"]] == [merchant.id]
    assert [item["id"] for item in report["skipped"]] == [quiet.id]
    assert report["failed"] == []


# Withdrawals

@pytest.mark.asyncio
async def test_withdrawal_review_over_http(client, auth_headers, factory, finance_admin, db_session):
    user = await factory.user()
    await factory.distributor(user, frozen="100.00")
    withdrawal = await factory.withdrawal(user, "100.00")
    url = f"{BASE}/withdrawals/{withdrawal.id}/handle"

    response = await client.post(url, headers=auth_headers, json={"action": "reject"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.post(url, headers=auth_headers, json={"action": "approve"})
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["operator_id"] == finance_admin.id

    response = await client.post(url, headers=auth_headers, json={"action": "reject", "reason": "late"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_WITHDRAWAL_STATUS"

    response = await client.post(url, headers=auth_headers, json={"action": "process"})
    assert response.json()["status"] == "processing"

    response = await client.post(url, headers=auth_headers, json={"action": "complete"})
    assert response.status_code == 200
    assert response.json()["status"] == "success"

    distributor = (await db_session.execute(
        select(Distributor).where(Distributor.user_id == user.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert distributor.frozen_commission == Decimal("0.00")
    assert distributor.withdrawn_commission == Decimal("100.00")


@pytest.mark.asyncio
async def test_unknown_withdrawal_is_not_found(client, auth_headers):
    response = await client.post(f"{BASE}/withdrawals/999/handle", headers=auth_headers, json={"action": "approve"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_WITHDRAWAL_NOT_FOUND"


@pytest.mark.asyncio
async def test_batch_withdrawal_handling(client, auth_headers, factory, db_session):
    user = await factory.user()
    first = await factory.withdrawal(user)
    done = await factory.withdrawal(user, status=WithdrawalStatus.SUCCESS)

    response = await client.post(f"{BASE}/withdrawals/batch", headers=auth_headers, json={
        "ids": [first.id, done.id], "action": "approve",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == [first.id]
    assert body["failed"] == [done.id]
    assert body["items"][1]["error_code"] == "ERR_WITHDRAWAL_STATUS"

    stored = (await db_session.execute(
        select(Withdrawal).where(Withdrawal.id == first.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert stored.status == WithdrawalStatus.APPROVED


@pytest.mark.asyncio
async def test_batch_rejects_process_action(client, auth_headers):
    response = await client.post(f"{BASE}/withdrawals/batch", headers=auth_headers, json={
        "ids": [1], "action": "process",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_withdrawals(client, auth_headers, factory):
    user = await factory.user()
    for _ in range(3):
        await factory.withdrawal(user)
    await factory.withdrawal(user, status=WithdrawalStatus.REJECTED)

    response = await client.get(
        f"{BASE}/withdrawals", headers=auth_headers, params={"status": "pending", "page": 1, "page_size": 2}
    )
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 3
    assert len(page["items"]) == 2

    response = await client.get(f"{BASE}/withdrawals/summary", headers=auth_headers)
    assert response.json()["pending_count"] == 3
    assert response.json()["rejected_count"] == 1


# Reports & exports

@pytest.mark.asyncio
async def test_dashboard_routes(client, auth_headers):
    response = await client.get(f"{BASE}/dashboard", headers=auth_headers)
    assert response.status_code == 200
    assert Decimal(response.json()["total_revenue"]) == Decimal("0")

    response = await client.get(f"{BASE}/dashboard/trend", headers=auth_headers, params={"days": 90})
    assert len(response.json()) == 30

    for path in ("channels", "settlements", "withdrawals", "refunds"):
        response = await client.get(f"{BASE}/dashboard/{path}", headers=auth_headers)
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_daily_revenue_route(client, auth_headers):
    response = await client.get(
        f"{BASE}/revenue/daily", headers=auth_headers,
        params={"start_date": "2024-03-01", "end_date": "2024-03-07"},
    )
    assert response.status_code == 200
    assert len(response.json()) == 7

    response = await client.get(
        f"{BASE}/revenue/daily", headers=auth_headers,
        params={"start_date": "2024-03-07", "end_date": "2024-03-01"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_csv_export_route(client, auth_headers, factory):
    user = await factory.user()
    await factory.withdrawal(user)

    response = await client.get(f"{BASE}/export/withdrawals", headers=auth_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="withdrawals_20240315103000.csv"'
    text = response.content.decode("utf-8-sig")
    assert text.splitlines()[0].startswith("Withdrawal No,User ID,Type")
    assert "Pending review" in text

import asyncio
import time
import subprocess
import httpx
import sys
import os
import signal
from datetime import date

from sqlalchemy import select

from finance_backend.app.core.jwt import create_access_token
from finance_backend.app.db.session import AsyncSessionLocal, engine
from finance_backend.app.models.admin import Admin
from finance_backend.app.models.merchant import Merchant

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
SERVER_CMD = [sys.executable, "-m", "uvicorn", "finance_backend.app.main:app", "--host", "127.0.0.1", "--port", "8000"]

def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.TransportError as e:
            print(f"Connect error: {e}")
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False

async def load_fixtures():
    """Token for the seeded finance admin and the demo merchant id (run seed_admins.py first)."""
    async with AsyncSessionLocal() as db:
        admin = (await db.execute(select(Admin).where(Admin.username == "finance"))).scalar_one_or_none()
        merchant = (await db.execute(select(Merchant).where(Merchant.name == "Demo Lockers"))).scalar_one_or_none()
    await engine.dispose()
    if admin is None or merchant is None:
        raise SystemExit("❌ Seed data missing, run finance_backend/seed_admins.py first")
    token = create_access_token(data={"sub": admin.username, "admin_id": admin.id, "role": admin.role.value})
    return token, merchant.id

def run_verification():
    token, merchant_id = asyncio.run(load_fixtures())
    headers = {"Authorization": f"Bearer {token}"}
    today = date.today().isoformat()
    period = {"period_start": today, "period_end": today}

    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = subprocess.Popen(
        SERVER_CMD,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "DB_ECHO": "True"} # Enable echo to see SQL
    )

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        # 2. Create Settlement
        print("\n--- [Step 2] Creating Settlement (Persistence Test) ---")
        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/admin/finance/settlements",
            json={"type": "merchant", "target_id": merchant_id, **period},
            headers=headers,
        )

        if resp.status_code == 409:
            print("⚠️ Settlement already exists (persistence working from previous run?)")
        elif resp.status_code == 201:
            print("✅ Settlement Created Successfully")
            print(resp.json())
        else:
            print(f"❌ Settlement Creation Failed: {resp.status_code} {resp.text}")
            raise RuntimeError("Settlement creation failed")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        proc.send_signal(signal.SIGTERM)
        proc.wait()

    time.sleep(2) # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = subprocess.Popen(SERVER_CMD, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        # 4. Look the settlement up again
        print("\n--- [Step 5] Listing Settlements (Post-Restart) ---")
        resp = httpx.get(
            f"{BASE_URL}{API_PREFIX}/admin/finance/settlements",
            params={"type": "merchant", "target_id": merchant_id, **period},
            headers=headers,
        )
        if resp.status_code == 200 and resp.json()["total"] >= 1:
            settlement = resp.json()["items"][0]
            print(f"✅ Settlement {settlement['settlement_no']} Persisted ({settlement['status']})")
        else:
            print(f"❌ Settlement Missing (Persistence Issue?): {resp.status_code} {resp.text}")
            raise RuntimeError("Settlement not found after restart")

        # 5. Summary reflects the stored row
        print("\n--- [Step 6] Checking Summary ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/admin/finance/settlements/summary", headers=headers)
        if resp.status_code == 200:
            print("✅ Summary Available")
            print(resp.json())
        else:
            print(f"❌ Summary Failed: {resp.status_code}")

    finally:
        print("\n--- [Step 7] Stopping Server ---")
        proc2.send_signal(signal.SIGTERM)
        proc2.wait()

if __name__ == "__main__":
    run_verification()

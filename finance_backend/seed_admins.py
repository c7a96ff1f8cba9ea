"""
Database seeding script for back-office admins.

Creates one SUPER_ADMIN, one FINANCE and one OPERATOR admin plus a demo
merchant (venue and device included), then prints a bearer token per admin.
Admins sign in through the central identity service in production; the
printed tokens are for local development only.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from finance_backend.app.core.jwt import create_access_token
from finance_backend.app.db.session import AsyncSessionLocal, Base, engine
from finance_backend.app.models.admin import Admin
from finance_backend.app.models.finance_enums import AdminRole
from finance_backend.app.models.merchant import Device, Merchant, Venue

SEED_ADMINS = [
    ("root", "Platform Owner", AdminRole.SUPER_ADMIN),
    ("finance", "Finance Desk", AdminRole.FINANCE),
    ("ops", "Operations Desk", AdminRole.OPERATOR),
]


async def seed_admins():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting admin seeding...")

        existing = (await db.execute(select(Admin).where(Admin.username == "root"))).scalar_one_or_none()
        if existing:
            print("ℹ️  Admins already exist, skipping seeding")
        else:
            for username, real_name, role in SEED_ADMINS:
                db.add(Admin(username=username, real_name=real_name, role=role, is_active=True))
                print(f"✅ Created {role.value} admin: {username}")

            merchant = Merchant(name="Demo Lockers", commission_rate=Decimal("0.1000"))
            db.add(merchant)
            await db.flush()
            venue = Venue(merchant_id=merchant.id, name="Demo Venue")
            db.add(venue)
            await db.flush()
            db.add(Device(device_no="DEMO-0001", venue_id=venue.id, name="Demo Locker"))
            print(f"✅ Created merchant #{merchant.id} (Demo Lockers, 10% commission)")

            await db.commit()

        admins = (await db.execute(select(Admin).order_by(Admin.id))).scalars().all()
        print("\nDevelopment tokens:")
        for admin in admins:
            token = create_access_token(data={"sub": admin.username, "admin_id": admin.id, "role": admin.role.value})
            print(f"  - {admin.username} ({admin.role.value}): {token}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_admins())

import asyncio
import asyncpg

from finance_backend.app.core.config import settings

# asyncpg wants a plain postgresql:// DSN
db_url = settings.database_url.replace("+asyncpg", "")

print(f"Testing connection to: {db_url}")

async def check_db():
    try:
        conn = await asyncpg.connect(db_url)
    except (OSError, asyncpg.PostgresError) as e:
        print(f"❌ Connection Failed: {e}")
        raise SystemExit(1)

    try:
        version = await conn.fetchval("SELECT version()")
        print(f"✅ Connection Successful! {version}")
        tables = await conn.fetch(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name"
        )
        names = [row["table_name"] for row in tables]
        missing = {"settlements", "withdrawals", "audit_logs"} - set(names)
        if missing:
            print(f"⚠️ Finance tables not created yet: {', '.join(sorted(missing))}")
        else:
            print(f"✅ Finance schema present ({len(names)} tables)")
    finally:
        await conn.close()

if __name__ == "__main__":
    asyncio.run(check_db())

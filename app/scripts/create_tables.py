"""
Create the database tables from the ORM models and seed default ledger accounts.

Schema migrations are not managed by this service; use this for a fresh database.

Usage:
  python -m app.scripts.create_tables
  python -m app.scripts.create_tables --seed-accounts
"""

import argparse
import asyncio

from sqlalchemy import select

from app.api.v1.ledger.service import ensure_default_accounts
from app.core.models import Tenant
from app.db.session import AsyncSessionLocal, Base, engine


async def run(seed_accounts: bool = False) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"Tables ready: {len(Base.metadata.tables)}")

    if not seed_accounts:
        return
    async with AsyncSessionLocal() as session:
        tenant_ids = (await session.execute(select(Tenant.id))).scalars().all()
        for tenant_id in tenant_ids:
            await ensure_default_accounts(session, tenant_id)
        await session.commit()
        print(f"Default accounts ensured for {len(tenant_ids)} school(s)")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create tables and optionally seed default accounts.")
    parser.add_argument(
        "--seed-accounts",
        action="store_true",
        help="Create the default chart of accounts for every existing school",
    )
    args = parser.parse_args()
    asyncio.run(run(seed_accounts=args.seed_accounts))


if __name__ == "__main__":
    main()

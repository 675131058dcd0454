"""
Database seeding script for the first float holders.

Creates an ADMIN and a PARTNER holder (the approver roles) and prints a
development bearer token for each. Run this once after the database is set up.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from institute_finance.app.core.jwt import create_access_token
from institute_finance.app.db.session import AsyncSessionLocal, Base, engine
from institute_finance.app.models.enums import HolderRole
from institute_finance.app.models.holder import Holder

SEED_HOLDERS = [
    ("Institute Admin", "admin@institute.test", HolderRole.ADMIN),
    ("Managing Partner", "partner@institute.test", HolderRole.PARTNER),
]


async def seed_holders():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Seeding holders...")

        existing = await db.execute(select(Holder).where(Holder.role == HolderRole.ADMIN))
        if existing.scalars().first():
            print("An ADMIN holder already exists, skipping seeding")
            return

        holders = [Holder(full_name=name, email=email, role=role) for name, email, role in SEED_HOLDERS]
        db.add_all(holders)
        await db.commit()

        print("\nSeeded holders (development tokens):")
        for holder in holders:
            token = create_access_token(
                data={"sub": holder.email, "user_id": holder.id, "role": holder.role.value}
            )
            print(f"  - {holder.role.value:<8} id={holder.id}  {token}")


if __name__ == "__main__":
    asyncio.run(seed_holders())

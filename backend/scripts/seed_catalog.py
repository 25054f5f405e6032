"""Create tables and seed demo mappings plus an admin user.

Usage: ADMIN_EMAIL=... ADMIN_PASSWORD=... python scripts/seed_catalog.py
"""

import asyncio
import os
import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from sqlalchemy import select

from tirecode.core.cache import cache_client, close_redis_client
from tirecode.core.db import SessionLocal, engine
from tirecode.core.security import get_password_hash_async
from tirecode.domain.errors import ConflictError
from tirecode.models import AdminUser, Base
from tirecode.services.mappings import MappingService

DEMO_MAPPINGS = [
    ("205/55R16", "100"),
    ("195/65R15", "101"),
    ("215/60R16", "102"),
    ("225/45R17", "103"),
    ("235/50R18", "104"),
    ("245/40R18", "105"),
    ("255/55R19", "106"),
    ("265/70R17", "107"),
]
DEMO_VARIANTS = [("205/55R16", 91, "V"), ("205/55R16", 94, "W")]


async def seed() -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        raise SystemExit("ADMIN_EMAIL and ADMIN_PASSWORD are required to seed the admin user.")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    mapping_ids = {}
    for size, code in DEMO_MAPPINGS:
        async with SessionLocal() as session:
            service = MappingService(session, cache_client)
            try:
                snapshot = await service.create(size_raw=size, code_public=code)
            except ConflictError as exc:
                print(f"- skipped {size}: {exc.message}")
                continue
            mapping_ids[snapshot["sizeNormalized"]] = snapshot["id"]
            print(f"+ {snapshot['sizeNormalized']} -> {snapshot['codePublic']}")

    for size, load_index, speed_index in DEMO_VARIANTS:
        mapping_id = mapping_ids.get(size)
        if mapping_id is None:
            continue
        async with SessionLocal() as session:
            service = MappingService(session, cache_client)
            await service.update(mapping_id, load_index=load_index, speed_index=speed_index)
            print(f"+ variant {size} {load_index}{speed_index}")

    password_hash = await get_password_hash_async(admin_password)
    async with SessionLocal() as session:
        admin = (
            await session.execute(select(AdminUser).where(AdminUser.email == admin_email))
        ).scalar_one_or_none()
        if admin is None:
            session.add(AdminUser(email=admin_email, password_hash=password_hash, is_active=True))
        else:
            admin.password_hash = password_hash
            admin.is_active = True
        await session.commit()
    print(f"+ admin user {admin_email}")

    await close_redis_client()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())

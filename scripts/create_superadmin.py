#!/usr/bin/env python3
"""
Create a super_admin account. Administrators cannot self-register, so this is
the only way to provision the first one.

Reads credentials from .env:
    ADMIN_EMAIL        admin account email (required)
    ADMIN_PASSWORD     admin account password (required)
    ADMIN_FIRST_NAME   optional, defaults to "Super"
    ADMIN_LAST_NAME    optional, defaults to "Admin"

Usage:
    python -m scripts.create_superadmin
"""
from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

# Add backend root to path so imports resolve
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "services" / "identity"))
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "shared"))

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import app.access.models  # noqa: F401 - resolve users.facility_id FK
from app.auth.store import IdentityStore
from app.auth.utils import PasswordHasher
from app.config import get_settings
from shared.constants import Role


async def main() -> None:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("Error: ADMIN_EMAIL and ADMIN_PASSWORD must be set in .env")
        sys.exit(1)
    settings = get_settings()

    engine = create_async_engine(settings.identity_database_url, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        store = IdentityStore(session, PasswordHasher(rounds=settings.bcrypt_rounds))
        existing = await store.find_by_email(email, include_deleted=True)

        if existing is not None:
            print(f"User {email} already exists (id={existing.id}).")
            if existing.role is not Role.SUPER_ADMIN:
                await store.update(existing.id, role=Role.SUPER_ADMIN)
                await store.commit()
                print("  -> Upgraded to super_admin.")
            else:
                print("  -> Already a super_admin. Nothing to do.")
        else:
            user = await store.create(
                email=email,
                password=password,
                first_name=os.getenv("ADMIN_FIRST_NAME", "Super"),
                last_name=os.getenv("ADMIN_LAST_NAME", "Admin"),
                role=Role.SUPER_ADMIN,
                is_verified=True,
            )
            await store.commit()
            print(f"Super admin created: {email} (id={user.id})")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

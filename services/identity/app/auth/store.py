"""
Identity service — credential store.

Every read and write of the ``users`` table goes through ``IdentityStore``.
Emails are normalised before every lookup and write, passwords are hashed on
the way in, and soft-deleted rows are invisible unless asked for.

The store flushes but never commits on its own; the request-scoped session
commits when the handler returns.  ``commit()`` exists for the few failure
paths (lockout counters) that must persist even though the request raises.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.types import UTCDateTime, utcnow

from app.auth.models import User
from app.auth.utils import PasswordHasher, normalize_email


class IdentityStore:
    def __init__(self, session: AsyncSession, hasher: PasswordHasher) -> None:
        self.session = session
        self.hasher = hasher

    # ── Lookups ───────────────────────────────────────────────────────────────

    async def find_by_email(
        self, email: str, *, include_deleted: bool = False
    ) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(
        self, user_id: uuid.UUID, *, include_deleted: bool = False
    ) -> User | None:
        stmt = select(User).where(User.id == user_id)
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_verification_token(
        self, token_hash: str, now: datetime | None = None
    ) -> User | None:
        now = now or utcnow()
        result = await self.session.execute(
            select(User).where(
                User.verification_token_hash == token_hash,
                User.verification_token_expires_at > now,
                User.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_reset_token(
        self, token_hash: str, now: datetime | None = None
    ) -> User | None:
        now = now or utcnow()
        result = await self.session.execute(
            select(User).where(
                User.password_reset_token_hash == token_hash,
                User.password_reset_expires_at > now,
                User.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    # ── Writes ────────────────────────────────────────────────────────────────

    def _build_record(self, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Normalise a field dict before it reaches the table.

        ``password`` is hashed into ``password_hash``; passing a ready-made
        ``password_hash`` is refused so no code path can store plaintext by
        mistake.
        """
        if "password_hash" in fields:
            raise ValueError("pass 'password', not 'password_hash'")
        record = dict(fields)
        if "password" in record:
            record["password_hash"] = self.hasher.hash(record.pop("password"))
        if "email" in record:
            record["email"] = normalize_email(record["email"])
        return record

    async def create(self, **fields: Any) -> User:
        """Insert a user and flush so ``user.id`` is usable without committing."""
        record = self._build_record(fields)
        if "password_hash" not in record:
            raise ValueError("a password is required to create an account")
        user = User(**record)
        self.session.add(user)
        await self.session.flush()
        return user

    async def update(self, user_id: uuid.UUID, **fields: Any) -> User:
        user = await self.find_by_id(user_id, include_deleted=True)
        if user is None:
            raise LookupError(f"user {user_id} does not exist")
        for key, value in self._build_record(fields).items():
            setattr(user, key, value)
        await self.session.flush()
        return user

    async def soft_delete(self, user_id: uuid.UUID, now: datetime | None = None) -> User:
        return await self.update(user_id, deleted_at=now or utcnow(), is_active=False)

    # ── Lockout counters ──────────────────────────────────────────────────────

    async def increment_failed_attempts(
        self,
        user: User,
        *,
        max_attempts: int,
        locked_until: datetime,
    ) -> User:
        """
        Count one failed login in a single UPDATE.

        The increment and the conditional lock are evaluated by the database,
        so two concurrent failures always add two.
        """
        new_count = User.failed_login_attempts + 1
        await self.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                failed_login_attempts=new_count,
                locked_until=sa.case(
                    (new_count >= max_attempts, sa.literal(locked_until, type_=UTCDateTime())),
                    else_=User.locked_until,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(user)
        return user

    # ── Backup codes ──────────────────────────────────────────────────────────

    async def consume_backup_code(self, user: User, code_hash: str) -> bool:
        """
        Remove one backup code digest with a compare-and-set UPDATE.

        The row only changes if its stored list still equals the list this
        request read.  When a concurrent login spent a code first, no row
        matches and the code is refused.
        """
        expected = list(user.backup_codes or [])
        if code_hash not in expected:
            return False
        remaining = [stored for stored in expected if stored != code_hash]
        result = await self.session.execute(
            update(User)
            .where(
                User.id == user.id,
                # json has no equality operator on PostgreSQL; compare the text
                sa.cast(User.backup_codes, sa.Text)
                == sa.cast(sa.literal(expected, type_=sa.JSON()), sa.Text),
            )
            .values(backup_codes=remaining, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(user)
        return result.rowcount == 1

    async def reset_failed_attempts(self, user: User) -> User:
        user.failed_login_attempts = 0
        user.locked_until = None
        await self.session.flush()
        return user

    async def commit(self) -> None:
        await self.session.commit()

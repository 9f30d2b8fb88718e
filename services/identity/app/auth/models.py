"""
Identity service — SQLAlchemy ORM model for accounts.

Tables owned by this module:
  - users   Credentials, role, lockout counters, 2FA material, one-off tokens

Column types are dialect-neutral (Uuid, JSON, UTCDateTime) so the same
metadata runs on PostgreSQL in production and SQLite in the test suite.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from shared.constants import Role
from shared.database.postgres import Base
from shared.database.types import UTCDateTime, utcnow

from app.auth.constants import Gender


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        sa.CheckConstraint(
            "failed_login_attempts >= 0",
            name="ck_users_failed_login_attempts_non_negative",
        ),
        sa.CheckConstraint(
            "length(password_hash) > 0",
            name="ck_users_password_hash_not_empty",
        ),
    )

    # ── Primary key ──────────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), primary_key=True, default=uuid.uuid4
    )

    # ── Credentials ───────────────────────────────────────────────────────────
    # Always stored lower-cased; unique across soft-deleted rows too so a
    # deleted account's address cannot be re-registered.
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    # ── Profile ───────────────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    phone: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(sa.Date(), nullable=True)
    gender: Mapped[Gender | None] = mapped_column(
        sa.Enum(
            Gender,
            name="gender",
            native_enum=False,
            length=8,
            values_callable=_enum_values,
        ),
        nullable=True,
    )

    # ── Authorization ─────────────────────────────────────────────────────────
    role: Mapped[Role] = mapped_column(
        sa.Enum(
            Role,
            name="userrole",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=Role.PATIENT,
        index=True,
    )
    facility_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("facilities.id", ondelete="SET NULL", name="fk_users_facility_id"),
        nullable=True,
        index=True,
    )

    # ── Account flags ─────────────────────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=True, server_default=sa.true(), index=True
    )
    is_verified: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )

    # ── Lockout state ─────────────────────────────────────────────────────────
    failed_login_attempts: Mapped[int] = mapped_column(
        sa.Integer(), nullable=False, default=0, server_default=sa.text("0")
    )
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_login_ip: Mapped[str | None] = mapped_column(sa.String(45), nullable=True)

    # ── Two-factor ────────────────────────────────────────────────────────────
    # two_factor_secret is non-null exactly when two_factor_enabled is true.
    two_factor_enabled: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    two_factor_secret: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    # SHA-256 digests of the remaining single-use recovery codes
    backup_codes: Mapped[list[str] | None] = mapped_column(sa.JSON(), nullable=True)

    # ── One-off tokens (hashed at rest) ───────────────────────────────────────
    verification_token_hash: Mapped[str | None] = mapped_column(
        sa.String(64), nullable=True, index=True
    )
    verification_token_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    password_reset_token_hash: Mapped[str | None] = mapped_column(
        sa.String(64), nullable=True, index=True
    )
    password_reset_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    # ── Audit timestamps ──────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    # Soft delete: rows are never physically removed
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

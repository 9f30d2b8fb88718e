"""Full identity schema: facilities, users, patients

Revision ID: 001
Revises:
Create Date: 2026-10-18

Tables created:
  - facilities   Tenant record; subscription state gates paid features
  - users        Credentials, role, lockout counters, 2FA material, one-off tokens
  - patients     Patient record linked to a user account, doctor and facility

Enumerations (role, gender, subscription status) are stored as VARCHAR so new
values never need an ALTER TYPE.

Downgrade: drops the trigger, then all tables in reverse dependency order.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    ]


# ─────────────────────────────────────────────────────────────────────────────
#  UPGRADE
# ─────────────────────────────────────────────────────────────────────────────

def upgrade() -> None:
    # ── 1. facilities ─────────────────────────────────────────────────────────
    op.create_table(
        "facilities",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "subscription_status",
            sa.String(16),
            nullable=False,
            server_default="trial",
        ),
        sa.Column("subscription_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_facilities"),
        sa.CheckConstraint(
            "subscription_status IN ('active', 'trial', 'expired', 'suspended')",
            name="ck_facilities_subscription_status",
        ),
    )
    op.create_index("ix_facilities_is_active", "facilities", ["is_active"])
    op.create_index(
        "ix_facilities_subscription_status", "facilities", ["subscription_status"]
    )

    # ── 2. users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        # Credentials
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        # Profile
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(8), nullable=True),
        # Authorization
        sa.Column("role", sa.String(32), nullable=False, server_default="patient"),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=True),
        # Account flags
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column(
            "is_verified",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        # Lockout
        sa.Column(
            "failed_login_attempts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_ip", sa.String(45), nullable=True),
        # Two-factor
        sa.Column(
            "two_factor_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("two_factor_secret", sa.String(64), nullable=True),
        sa.Column("backup_codes", sa.JSON(), nullable=True),
        # One-off tokens (SHA-256 hex digests)
        sa.Column("verification_token_hash", sa.String(64), nullable=True),
        sa.Column(
            "verification_token_expires_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("password_reset_token_hash", sa.String(64), nullable=True),
        sa.Column("password_reset_expires_at", sa.DateTime(timezone=True), nullable=True),
        # Audit timestamps
        *_timestamps(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        # Constraints
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.ForeignKeyConstraint(
            ["facility_id"],
            ["facilities.id"],
            name="fk_users_facility_id",
            ondelete="SET NULL",
        ),
        sa.CheckConstraint(
            "failed_login_attempts >= 0",
            name="ck_users_failed_login_attempts_non_negative",
        ),
        sa.CheckConstraint(
            "length(password_hash) > 0",
            name="ck_users_password_hash_not_empty",
        ),
        sa.CheckConstraint(
            "role IN ('super_admin', 'facility_admin', 'doctor', 'nurse', "
            "'pharmacist', 'patient', 'staff')",
            name="ck_users_role",
        ),
    )

    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_facility_id", "users", ["facility_id"])
    op.create_index("ix_users_is_active", "users", ["is_active"])
    op.create_index("ix_users_created_at", "users", ["created_at"])
    op.create_index(
        "ix_users_verification_token_hash", "users", ["verification_token_hash"]
    )
    op.create_index(
        "ix_users_password_reset_token_hash", "users", ["password_reset_token_hash"]
    )

    # ── 3. patients ───────────────────────────────────────────────────────────
    op.create_table(
        "patients",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(8), nullable=True),
        sa.Column("primary_doctor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("primary_facility_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_patients_user_id", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["primary_doctor_id"],
            ["users.id"],
            name="fk_patients_primary_doctor_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["primary_facility_id"],
            ["facilities.id"],
            name="fk_patients_primary_facility_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_patients_user_id", "patients", ["user_id"], unique=True)
    op.create_index("ix_patients_primary_doctor_id", "patients", ["primary_doctor_id"])
    op.create_index(
        "ix_patients_primary_facility_id", "patients", ["primary_facility_id"]
    )

    # ── 4. updated_at trigger (auto-stamp on every row update) ────────────────
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_users_updated_at
        BEFORE UPDATE ON users
        FOR EACH ROW EXECUTE FUNCTION set_updated_at();
        """
    )


# ─────────────────────────────────────────────────────────────────────────────
#  DOWNGRADE
# ─────────────────────────────────────────────────────────────────────────────

def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_users_updated_at ON users")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at")

    # Reverse FK dependency order
    op.drop_table("patients")
    op.drop_table("users")
    op.drop_table("facilities")

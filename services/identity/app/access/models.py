"""
Collaborator tables read by the authorization dependencies.

The identity service only needs the columns that drive access decisions;
full facility and patient records are owned by the clinical services.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from shared.database.postgres import Base
from shared.database.types import UTCDateTime, utcnow

from app.access.constants import SubscriptionStatus
from app.auth.constants import Gender


class Facility(Base):
    __tablename__ = "facilities"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=True, server_default=sa.true(), index=True
    )
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        sa.Enum(
            SubscriptionStatus,
            name="subscriptionstatus",
            native_enum=False,
            length=16,
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        default=SubscriptionStatus.TRIAL,
        index=True,
    )
    subscription_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), primary_key=True, default=uuid.uuid4
    )
    # Account of the patient themself (nullable: records created by staff)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_patients_user_id"),
        nullable=True,
        unique=True,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(sa.Date(), nullable=True)
    gender: Mapped[Gender | None] = mapped_column(
        sa.Enum(
            Gender,
            name="gender",
            native_enum=False,
            length=8,
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=True,
    )
    primary_doctor_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_patients_primary_doctor_id"),
        nullable=True,
        index=True,
    )
    primary_facility_id: Mapped[uuid.UUID | None] = mapped_column(
        sa.Uuid(),
        sa.ForeignKey("facilities.id", ondelete="SET NULL", name="fk_patients_primary_facility_id"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

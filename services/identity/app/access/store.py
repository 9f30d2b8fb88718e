"""Read access to the facility and patient collaborator tables."""
from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.access.constants import SubscriptionStatus
from app.access.models import Facility, Patient


class FacilityStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, facility_id: uuid.UUID) -> Facility | None:
        result = await self.session.execute(
            select(Facility).where(Facility.id == facility_id)
        )
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Facility:
        facility = Facility(**fields)
        self.session.add(facility)
        await self.session.flush()
        return facility

    async def mark_subscription_expired(self, facility_id: uuid.UUID) -> None:
        """Single-row transition to ``expired``; committed by the caller."""
        await self.session.execute(
            update(Facility)
            .where(Facility.id == facility_id)
            .values(subscription_status=SubscriptionStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )

    async def commit(self) -> None:
        await self.session.commit()


class PatientStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_id(self, patient_id: uuid.UUID) -> Patient | None:
        result = await self.session.execute(
            select(Patient).where(Patient.id == patient_id)
        )
        return result.scalar_one_or_none()

    async def find_by_user_id(self, user_id: uuid.UUID) -> Patient | None:
        result = await self.session.execute(
            select(Patient).where(Patient.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(self, **fields: Any) -> Patient:
        patient = Patient(**fields)
        self.session.add(patient)
        await self.session.flush()
        return patient

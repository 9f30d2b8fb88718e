"""
Access predicates.

Pure functions over the authenticated identity and the target record; no I/O,
no FastAPI.  The dependencies in ``app.access.dependencies`` load the records
and turn a negative answer into the matching HTTP error.
"""
from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol
from uuid import UUID

from shared.constants import Role
from shared.database.types import utcnow

from app.access.constants import ENTITLED_SUBSCRIPTION_STATUSES, SubscriptionStatus


class Actor(Protocol):
    id: UUID
    role: Role
    facility_id: UUID | None


class PatientRecord(Protocol):
    user_id: UUID | None
    primary_doctor_id: UUID | None
    primary_facility_id: UUID | None


class FacilityRecord(Protocol):
    subscription_status: SubscriptionStatus
    subscription_expires_at: datetime | None


class SubscriptionOutcome(str, enum.Enum):
    OK = "ok"
    REQUIRED = "required"
    EXPIRED = "expired"


def has_role(actor: Actor, roles: Iterable[Role]) -> bool:
    return Role(actor.role) in set(roles)


def can_access_patient(actor: Actor, patient: PatientRecord) -> bool:
    """
    Grant when any of these holds:

    * the actor is a super_admin
    * the record belongs to the actor (patient reading their own file)
    * the actor is a doctor and the patient's primary doctor
    * the actor works at the patient's primary facility (any role, which
      covers that facility's facility_admin)
    """
    role = Role(actor.role)
    if role is Role.SUPER_ADMIN:
        return True
    if patient.user_id is not None and patient.user_id == actor.id:
        return True
    if role is Role.DOCTOR and patient.primary_doctor_id == actor.id:
        return True
    if actor.facility_id is not None and patient.primary_facility_id == actor.facility_id:
        return True
    return False


def evaluate_subscription(
    facility: FacilityRecord, now: datetime | None = None
) -> SubscriptionOutcome:
    if SubscriptionStatus(facility.subscription_status) not in ENTITLED_SUBSCRIPTION_STATUSES:
        return SubscriptionOutcome.REQUIRED
    expires_at = facility.subscription_expires_at
    if expires_at is not None and expires_at < (now or utcnow()):
        return SubscriptionOutcome.EXPIRED
    return SubscriptionOutcome.OK


def bypasses_subscription(actor: Actor) -> bool:
    return Role(actor.role) is Role.SUPER_ADMIN

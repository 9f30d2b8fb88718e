"""
Authorization guards for business routers.

Each guard depends on ``get_current_identity`` so it can be used on its own:

    @router.get("/patients/{patient_id}")
    async def read_patient(
        patient: Patient = Depends(require_patient_access),
        _: CurrentIdentity = Depends(require_role(Role.DOCTOR, Role.NURSE)),
    ): ...

Loaded records are attached to ``request.state`` (``facility``, ``patient``)
for handlers that prefer not to re-declare the dependency.
"""
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.auth.dependencies import client_ip
from shared.constants import Role
from shared.models.user import CurrentIdentity

from app.access.models import Facility, Patient
from app.access.policy import (
    SubscriptionOutcome,
    bypasses_subscription,
    can_access_patient,
    evaluate_subscription,
    has_role,
)
from app.access.store import FacilityStore, PatientStore
from app.auth.dependencies import get_current_identity
from app.database import get_db
from app.exceptions import (
    FacilityInactive,
    FacilityNotFound,
    InsufficientPermissions,
    NoFacility,
    NoFacilityAssociation,
    PatientAccessDenied,
    PatientIdRequired,
    PatientNotFound,
    SubscriptionExpired,
    SubscriptionRequired,
)
from app.security_log import log_security_event


def get_facility_store(session: AsyncSession = Depends(get_db)) -> FacilityStore:
    return FacilityStore(session)


def get_patient_store(session: AsyncSession = Depends(get_db)) -> PatientStore:
    return PatientStore(session)


# ── Role ──────────────────────────────────────────────────────────────────────

def require_role(*roles: Role) -> Callable[..., Awaitable[CurrentIdentity]]:
    """Dependency factory: 403 unless the caller holds one of ``roles``."""
    allowed = frozenset(roles)

    async def _require_role(
        request: Request,
        identity: CurrentIdentity = Depends(get_current_identity),
    ) -> CurrentIdentity:
        if not has_role(identity, allowed):
            log_security_event(
                "insufficient_permissions",
                user_id=identity.id,
                role=identity.role.value,
                required=sorted(role.value for role in allowed),
                endpoint=request.url.path,
                method=request.method,
                ip=client_ip(request),
            )
            raise InsufficientPermissions(
                required=[role.value for role in roles],
                current=identity.role.value,
            )
        return identity

    return _require_role


# ── Facility ──────────────────────────────────────────────────────────────────

async def require_facility(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    facilities: FacilityStore = Depends(get_facility_store),
) -> Facility:
    if identity.facility_id is None:
        raise NoFacilityAssociation()

    facility = await facilities.find_by_id(identity.facility_id)
    if facility is None or not facility.is_active:
        raise FacilityInactive()

    request.state.facility = facility
    return facility


# ── Patient ───────────────────────────────────────────────────────────────────

def _requested_patient_id(request: Request) -> uuid.UUID | None:
    raw = request.path_params.get("patient_id") or request.query_params.get("patientId")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        # Not a UUID, so no such patient
        raise PatientNotFound() from None


async def require_patient_access(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    patients: PatientStore = Depends(get_patient_store),
) -> Patient:
    patient_id = _requested_patient_id(request)
    if patient_id is None:
        raise PatientIdRequired()

    patient = await patients.find_by_id(patient_id)
    if patient is None:
        raise PatientNotFound()

    if not can_access_patient(identity, patient):
        log_security_event(
            "patient_access_denied",
            user_id=identity.id,
            role=identity.role.value,
            patient_id=patient.id,
            ip=client_ip(request),
        )
        raise PatientAccessDenied()

    request.state.patient = patient
    return patient


# ── Subscription ──────────────────────────────────────────────────────────────

async def require_active_subscription(
    request: Request,
    identity: CurrentIdentity = Depends(get_current_identity),
    facilities: FacilityStore = Depends(get_facility_store),
) -> Facility | None:
    """
    Gate paid features on the caller's facility subscription.

    super_admin is never gated (returns None).  A subscription whose expiry
    date has passed is switched to ``expired`` and that change is committed
    before the 402 goes out.
    """
    if bypasses_subscription(identity):
        return None
    if identity.facility_id is None:
        raise NoFacility()

    facility = await facilities.find_by_id(identity.facility_id)
    if facility is None:
        raise FacilityNotFound()

    outcome = evaluate_subscription(facility)
    if outcome is SubscriptionOutcome.REQUIRED:
        raise SubscriptionRequired(facility.subscription_status.value)
    if outcome is SubscriptionOutcome.EXPIRED:
        expires_at = facility.subscription_expires_at
        await facilities.mark_subscription_expired(facility.id)
        await facilities.commit()
        log_security_event(
            "subscription_expired",
            facility_id=facility.id,
            expires_at=expires_at,
            user_id=identity.id,
        )
        raise SubscriptionExpired(expires_at)

    request.state.facility = facility
    return facility

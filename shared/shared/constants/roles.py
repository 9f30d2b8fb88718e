from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    FACILITY_ADMIN = "facility_admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PHARMACIST = "pharmacist"
    PATIENT = "patient"
    STAFF = "staff"


# Roles a visitor may pick on the public sign-up form. Administrators are
# provisioned out of band (see scripts/create_superadmin.py).
SELF_REGISTRATION_ROLES: frozenset[Role] = frozenset(
    {Role.PATIENT, Role.DOCTOR, Role.NURSE, Role.PHARMACIST, Role.STAFF}
)

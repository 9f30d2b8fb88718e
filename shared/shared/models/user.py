from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from shared.constants import Role


class CurrentIdentity(BaseModel):
    """
    Authenticated account attached to the request.

    Built from the live users row after token verification; deliberately has
    no password hash or 2FA secret so it can be handed to any handler.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)

    id: UUID
    email: str
    role: Role
    first_name: str
    last_name: str
    facility_id: UUID | None = None
    is_active: bool = True
    is_verified: bool = False
    two_factor_enabled: bool = False
    locked_until: datetime | None = None
    last_login_at: datetime | None = None

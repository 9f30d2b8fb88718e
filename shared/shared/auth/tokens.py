"""
Stateless JWT access / refresh tokens.

Access token claims:  {id, email, role, facilityId, iss, aud, exp, iat}
Refresh token claims: {id, iss, aud, exp, iat}

A refresh token never carries role or facility: exchanging it forces the
caller to reload the live account, so role changes are picked up on the next
rotation instead of being baked into a 30-day credential.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from jose import ExpiredSignatureError, JWTError, jwt

from shared.auth.config import AuthSettings

REFRESH_TOKEN_EXPIRE_SECONDS: int = 86_400 * 30  # fixed, not configurable


class TokenFailure(str, enum.Enum):
    EXPIRED = "expired"
    INVALID = "invalid"
    MALFORMED = "malformed"


class TokenError(Exception):
    def __init__(self, reason: TokenFailure, message: str | None = None) -> None:
        super().__init__(message or reason.value)
        self.reason = reason


class TokenSubject(Protocol):
    id: uuid.UUID
    email: str
    role: Any
    facility_id: uuid.UUID | None


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, enum.Enum) else value


class TokenService:
    def __init__(self, settings: AuthSettings) -> None:
        self._settings = settings

    @property
    def access_expires_in(self) -> int:
        return self._settings.expires_in

    # ── Issue ─────────────────────────────────────────────────────────────────

    def issue_access_token(
        self, identity: TokenSubject, *, now: datetime | None = None
    ) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "id": str(identity.id),
            "email": identity.email,
            "role": _enum_value(identity.role),
            "facilityId": str(identity.facility_id) if identity.facility_id else None,
            "iat": now,
            "exp": now + timedelta(seconds=self._settings.expires_in),
            "iss": self._settings.issuer,
            "aud": self._settings.audience,
        }
        return jwt.encode(payload, self._settings.secret, algorithm=self._settings.algorithm)

    def issue_refresh_token(
        self, identity: TokenSubject, *, now: datetime | None = None
    ) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "id": str(identity.id),
            "iat": now,
            "exp": now + timedelta(seconds=REFRESH_TOKEN_EXPIRE_SECONDS),
            "iss": self._settings.issuer,
            "aud": self._settings.refresh_audience,
        }
        return jwt.encode(
            payload, self._settings.refresh_secret, algorithm=self._settings.algorithm
        )

    # ── Verify ────────────────────────────────────────────────────────────────

    def verify_access_token(self, token: str | None) -> dict[str, Any]:
        return self._decode(token, self._settings.secret, self._settings.audience)

    def verify_refresh_token(self, token: str | None) -> dict[str, Any]:
        return self._decode(
            token, self._settings.refresh_secret, self._settings.refresh_audience
        )

    def _decode(self, token: str | None, secret: str, audience: str) -> dict[str, Any]:
        if not token or token.count(".") != 2:
            raise TokenError(TokenFailure.MALFORMED, "jwt malformed")
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._settings.algorithm],
                audience=audience,
                issuer=self._settings.issuer,
            )
        except ExpiredSignatureError as exc:
            raise TokenError(TokenFailure.EXPIRED, str(exc)) from exc
        except JWTError as exc:
            raise TokenError(TokenFailure.INVALID, str(exc)) from exc

        subject = claims.get("id")
        if not subject:
            raise TokenError(TokenFailure.MALFORMED, "missing id claim")
        try:
            uuid.UUID(str(subject))
        except ValueError as exc:
            raise TokenError(TokenFailure.MALFORMED, "id claim is not a UUID") from exc
        return claims

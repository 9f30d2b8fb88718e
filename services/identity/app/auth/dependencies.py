"""
Identity service — auth-specific FastAPI dependencies.

Builds the per-request collaborators (store, hasher, token service, lockout
policy, auth service) from ``Settings`` and resolves the bearer token into a
``CurrentIdentity``.  Routes and the access guards import from here.
"""
from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from shared.auth.dependencies import client_ip, http_bearer
from shared.auth.tokens import TokenError, TokenFailure, TokenService
from shared.models.user import CurrentIdentity

from app.access.store import PatientStore
from app.auth.lockout import LockoutPolicy
from app.auth.service import AuthService
from app.auth.store import IdentityStore
from app.auth.totp import TOTPGenerator
from app.auth.utils import PasswordHasher
from app.config import Settings, get_settings
from app.database import get_db
from app.exceptions import (
    AccountDisabled,
    AccountLocked,
    AuthTokenMissing,
    IdentityError,
    TokenExpired,
    TokenInvalid,
    UserNotFound,
)
from app.security_log import log_security_event


# ── Collaborators ─────────────────────────────────────────────────────────────

def get_password_hasher(settings: Settings = Depends(get_settings)) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


def get_identity_store(
    session: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> IdentityStore:
    return IdentityStore(session, hasher)


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(settings.auth_settings())


def get_lockout_policy(
    store: IdentityStore = Depends(get_identity_store),
    settings: Settings = Depends(get_settings),
) -> LockoutPolicy:
    return LockoutPolicy(
        store,
        max_attempts=settings.max_login_attempts,
        lockout_duration=timedelta(seconds=settings.lockout_time),
    )


def get_auth_service(
    session: AsyncSession = Depends(get_db),
    store: IdentityStore = Depends(get_identity_store),
    lockout: LockoutPolicy = Depends(get_lockout_policy),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        store=store,
        patients=PatientStore(session),
        lockout=lockout,
        tokens=tokens,
        totp=TOTPGenerator(),
        settings=settings,
    )


# ── Authentication ────────────────────────────────────────────────────────────

async def _resolve_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    store: IdentityStore,
    tokens: TokenService,
    lockout: LockoutPolicy,
) -> CurrentIdentity:
    if credentials is None or not credentials.credentials:
        raise AuthTokenMissing()
    token = credentials.credentials

    ip = client_ip(request)
    try:
        claims = tokens.verify_access_token(token)
    except TokenError as exc:
        if exc.reason is TokenFailure.EXPIRED:
            raise TokenExpired() from exc
        log_security_event("invalid_token", error=str(exc), reason=exc.reason.value, ip=ip)
        raise TokenInvalid() from exc

    user_id = uuid.UUID(claims["id"])
    user = await store.find_by_id(user_id)
    if user is None:
        log_security_event("token_for_unknown_user", user_id=user_id, ip=ip)
        raise UserNotFound()
    if not user.is_active:
        log_security_event("disabled_account_access", user_id=user.id, ip=ip)
        raise AccountDisabled()
    if lockout.is_locked(user):
        log_security_event(
            "locked_account_access", user_id=user.id, locked_until=user.locked_until, ip=ip
        )
        raise AccountLocked(user.locked_until)

    identity = CurrentIdentity.model_validate(user)
    request.state.identity = identity
    request.state.user_id = identity.id
    return identity


async def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    store: IdentityStore = Depends(get_identity_store),
    tokens: TokenService = Depends(get_token_service),
    lockout: LockoutPolicy = Depends(get_lockout_policy),
) -> CurrentIdentity:
    """Require a valid bearer token for a live, active, unlocked account."""
    return await _resolve_identity(request, credentials, store, tokens, lockout)


async def get_optional_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    store: IdentityStore = Depends(get_identity_store),
    tokens: TokenService = Depends(get_token_service),
    lockout: LockoutPolicy = Depends(get_lockout_policy),
) -> CurrentIdentity | None:
    """Same checks as ``get_current_identity`` but anonymous on any failure."""
    try:
        return await _resolve_identity(request, credentials, store, tokens, lockout)
    except IdentityError:
        return None

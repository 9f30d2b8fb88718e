"""
Identity service — pure business logic for authentication.

Rules:
  - Zero FastAPI imports.
  - Zero direct DB driver calls: persistence goes through IdentityStore /
    PatientStore, lockout through LockoutPolicy.
  - All I/O methods are async def.
  - Errors are raised as app.exceptions subclasses; the controller never
    inspects return codes.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError

from shared.auth.tokens import TokenError, TokenService
from shared.constants import Role
from shared.database.types import utcnow

from app.access.models import Patient
from app.access.store import PatientStore
from app.auth.constants import LINK_TOKEN_BYTES, Gender
from app.auth.lockout import LockoutPolicy
from app.auth.models import User
from app.auth.store import IdentityStore
from app.auth.totp import TOTPGenerator, generate_backup_codes, hash_backup_code
from app.auth.utils import hash_token
from app.config import Settings
from app.exceptions import (
    AccountDisabled,
    AccountLocked,
    EmailAlreadyExists,
    InvalidCredentials,
    InvalidPassword,
    InvalidRefreshToken,
    InvalidResetToken,
    InvalidTwoFactorCode,
    InvalidVerificationToken,
    TwoFactorAlreadyEnabled,
    TwoFactorNotEnabled,
    UserNotFound,
)
from app.security_log import log_business_event, log_security_event

logger = logging.getLogger(__name__)


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair


@dataclass(frozen=True)
class TwoFactorChallenge:
    """Password accepted; the client must resubmit with a TOTP or backup code."""

    user_id: uuid.UUID


@dataclass(frozen=True)
class Registration:
    user: User
    tokens: TokenPair
    # Plain verification token for the notification service; only its hash is stored
    verification_token: str


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    provisioning_uri: str


def _new_link_token() -> tuple[str, str]:
    """Return (plain, sha256 hex) for an emailed one-off link."""
    token = secrets.token_hex(LINK_TOKEN_BYTES)
    return token, hash_token(token)


class AuthService:
    def __init__(
        self,
        *,
        store: IdentityStore,
        patients: PatientStore,
        lockout: LockoutPolicy,
        tokens: TokenService,
        totp: TOTPGenerator,
        settings: Settings,
    ) -> None:
        self.store = store
        self.patients = patients
        self.lockout = lockout
        self.tokens = tokens
        self.totp = totp
        self.settings = settings

    def issue_tokens(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.tokens.issue_access_token(user),
            refresh_token=self.tokens.issue_refresh_token(user),
            expires_in=self.tokens.access_expires_in,
        )

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    # ── Registration ──────────────────────────────────────────────────────────

    async def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Role = Role.PATIENT,
        phone: str | None = None,
        date_of_birth: date | None = None,
        gender: Gender | None = None,
        ip_address: str | None = None,
    ) -> Registration:
        """
        Create an account, its patient record when the role is ``patient``,
        and a first token pair.

        Soft-deleted accounts keep their email reserved.  The unique index is
        the final word when two registrations race.
        """
        if await self.store.find_by_email(email, include_deleted=True) is not None:
            raise EmailAlreadyExists()

        verification_token, verification_hash = _new_link_token()
        try:
            user = await self.store.create(
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                date_of_birth=date_of_birth,
                gender=gender,
                role=role,
                verification_token_hash=verification_hash,
                verification_token_expires_at=utcnow()
                + timedelta(seconds=self.settings.verification_token_expire_seconds),
            )
        except IntegrityError as exc:
            raise EmailAlreadyExists() from exc

        if user.role is Role.PATIENT:
            await self.patients.create(
                user_id=user.id,
                first_name=first_name,
                last_name=last_name,
                date_of_birth=date_of_birth,
                gender=gender,
            )

        log_business_event(
            "user_registered", user_id=user.id, email=user.email, role=user.role.value, ip=ip_address
        )
        return Registration(
            user=user,
            tokens=self.issue_tokens(user),
            verification_token=verification_token,
        )

    # ── Login ─────────────────────────────────────────────────────────────────

    async def login(
        self,
        *,
        email: str,
        password: str,
        two_factor_code: str | None = None,
        backup_code: str | None = None,
        ip_address: str | None = None,
    ) -> AuthResult | TwoFactorChallenge:
        """
        Check order: unknown email, lock, password, active flag, second factor.

        A locked account is refused before the password is looked at, so a
        correct password does not leak through while locked.  Wrong
        passwords and wrong second factors both count towards the lockout.
        """
        user = await self.store.find_by_email(email)
        if user is None:
            self.store.hasher.verify_placeholder()
            log_security_event("login_unknown_email", email=email, ip=ip_address)
            raise InvalidCredentials()

        if self.lockout.is_locked(user):
            log_security_event(
                "login_while_locked", user_id=user.id, locked_until=user.locked_until, ip=ip_address
            )
            raise AccountLocked(user.locked_until)

        if not self.store.hasher.verify(password, user.password_hash):
            await self.lockout.record_failure(user)
            log_security_event(
                "login_failed",
                user_id=user.id,
                attempts=user.failed_login_attempts,
                ip=ip_address,
            )
            raise InvalidCredentials()

        if not user.is_active:
            log_security_event("login_disabled_account", user_id=user.id, ip=ip_address)
            raise AccountDisabled()

        if user.two_factor_enabled:
            if not two_factor_code and not backup_code:
                return TwoFactorChallenge(user_id=user.id)
            if two_factor_code:
                accepted = self.totp.verify(user.two_factor_secret, two_factor_code)
            else:
                accepted = await self._consume_backup_code(user, backup_code)
            if not accepted:
                await self.lockout.record_failure(user)
                log_security_event(
                    "invalid_2fa_code", user_id=user.id, email=user.email, ip=ip_address
                )
                raise InvalidTwoFactorCode()
            if backup_code and not two_factor_code:
                log_security_event(
                    "backup_code_used",
                    user_id=user.id,
                    remaining=len(user.backup_codes or []),
                    ip=ip_address,
                )

        await self.lockout.record_success(user)
        user = await self.store.update(user.id, last_login_at=utcnow(), last_login_ip=ip_address)

        log_business_event(
            "user_login", user_id=user.id, email=user.email, role=user.role.value, ip=ip_address
        )
        return AuthResult(user=user, tokens=self.issue_tokens(user))

    async def _consume_backup_code(self, user: User, code: str | None) -> bool:
        """Spend ``code`` if the account still holds it; each code works once."""
        if not code or not user.backup_codes:
            return False
        return await self.store.consume_backup_code(user, hash_backup_code(code))

    async def logout(self, user_id: uuid.UUID, *, ip_address: str | None = None) -> None:
        # Tokens are stateless; the client discards them.
        log_business_event("user_logout", user_id=user_id, ip=ip_address)

    async def refresh_session(self, refresh_token: str) -> TokenPair:
        """Mint a new pair from a refresh token, re-reading the live account."""
        try:
            claims = self.tokens.verify_refresh_token(refresh_token)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise InvalidRefreshToken() from exc

        user = await self.store.find_by_id(uuid.UUID(claims["id"]))
        if user is None or not user.is_active:
            raise InvalidRefreshToken()
        return self.issue_tokens(user)

    # ── Password reset & email verification ──────────────────────────────────

    async def request_password_reset(
        self, email: str, *, ip_address: str | None = None
    ) -> str | None:
        """
        Store a reset token hash and return the plain token for delivery.

        Returns None for unknown emails; the caller answers identically in
        both cases so addresses cannot be enumerated.
        """
        user = await self.store.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        token, token_hash = _new_link_token()
        await self.store.update(
            user.id,
            password_reset_token_hash=token_hash,
            password_reset_expires_at=utcnow()
            + timedelta(seconds=self.settings.password_reset_expire_seconds),
        )
        log_business_event("password_reset_requested", user_id=user.id, ip=ip_address)
        return token

    async def reset_password(
        self, token: str, new_password: str, *, ip_address: str | None = None
    ) -> User:
        user = await self.store.find_by_reset_token(hash_token(token))
        if user is None:
            log_security_event("invalid_reset_token", ip=ip_address)
            raise InvalidResetToken()

        # A reset also lifts any lockout: the owner has proven control of the mailbox
        user = await self.store.update(
            user.id,
            password=new_password,
            password_reset_token_hash=None,
            password_reset_expires_at=None,
            failed_login_attempts=0,
            locked_until=None,
        )
        log_business_event("password_reset_completed", user_id=user.id, ip=ip_address)
        return user

    async def verify_email(self, token: str, *, ip_address: str | None = None) -> User:
        user = await self.store.find_by_verification_token(hash_token(token))
        if user is None:
            raise InvalidVerificationToken()

        user = await self.store.update(
            user.id,
            is_verified=True,
            verification_token_hash=None,
            verification_token_expires_at=None,
        )
        log_business_event("email_verified", user_id=user.id, ip=ip_address)
        return user

    # ── Two-factor ────────────────────────────────────────────────────────────

    async def setup_two_factor(self, user_id: uuid.UUID) -> TwoFactorSetup:
        """Generate a candidate secret; nothing is stored until it is confirmed."""
        user = await self._get_user(user_id)
        if user.two_factor_enabled:
            raise TwoFactorAlreadyEnabled()

        secret = self.totp.generate_secret()
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=self.totp.provisioning_uri(
                secret, user.email, self.settings.totp_issuer
            ),
        )

    async def enable_two_factor(
        self,
        user_id: uuid.UUID,
        *,
        secret: str,
        code: str,
        ip_address: str | None = None,
    ) -> list[str]:
        """Confirm ``secret`` with a current code and return fresh backup codes."""
        user = await self._get_user(user_id)
        if not self.totp.verify(secret, code):
            log_security_event("invalid_2fa_code", user_id=user.id, stage="enable", ip=ip_address)
            raise InvalidTwoFactorCode(status_code=400)

        backup_codes = generate_backup_codes()
        await self.store.update(
            user.id,
            two_factor_enabled=True,
            two_factor_secret=secret,
            backup_codes=[hash_backup_code(code) for code in backup_codes],
        )
        log_business_event("2fa_enabled", user_id=user.id, email=user.email, ip=ip_address)
        return backup_codes

    async def disable_two_factor(
        self, user_id: uuid.UUID, *, password: str, ip_address: str | None = None
    ) -> None:
        user = await self._get_user(user_id)
        if not self.store.hasher.verify(password, user.password_hash):
            log_security_event("invalid_password", user_id=user.id, stage="disable_2fa", ip=ip_address)
            raise InvalidPassword()
        if not user.two_factor_enabled:
            raise TwoFactorNotEnabled()

        await self.store.update(
            user.id,
            two_factor_enabled=False,
            two_factor_secret=None,
            backup_codes=None,
        )
        log_business_event("2fa_disabled", user_id=user.id, email=user.email, ip=ip_address)

    # ── Account ───────────────────────────────────────────────────────────────

    async def get_profile(self, user_id: uuid.UUID) -> tuple[User, Patient | None]:
        user = await self._get_user(user_id)
        patient = None
        if user.role is Role.PATIENT:
            patient = await self.patients.find_by_user_id(user.id)
        return user, patient

    async def delete_account(
        self, user_id: uuid.UUID, *, password: str, ip_address: str | None = None
    ) -> None:
        """Soft delete: the row stays and its email remains reserved."""
        user = await self._get_user(user_id)
        if not self.store.hasher.verify(password, user.password_hash):
            log_security_event("invalid_password", user_id=user.id, stage="delete_account", ip=ip_address)
            raise InvalidPassword()

        await self.store.soft_delete(user.id)
        log_business_event("account_deleted", user_id=user.id, ip=ip_address)

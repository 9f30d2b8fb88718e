"""
Identity service — auth controller (request orchestration layer).

Responsibilities:
  - Receive validated input from the router.
  - Call AuthService methods (which own business logic).
  - Compose and return the response model.
  - Pass HTTP-layer context (client IP) from router to service.

No framework validation logic here (that belongs in schemas.py).
No business logic here (that belongs in service.py).
"""
from __future__ import annotations

import logging

from shared.models.user import CurrentIdentity

from app.auth.schemas import (
    BackupCodesResponse,
    EnableTwoFactorRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordConfirmRequest,
    PatientProfileResponse,
    ProfileResponse,
    ProfileUserResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenResponse,
    TwoFactorChallengeResponse,
    TwoFactorSetupResponse,
    UserResponse,
)
from app.auth.service import AuthService, TokenPair, TwoFactorChallenge

logger = logging.getLogger(__name__)

_RESET_REQUESTED_MESSAGE = "If this email exists, a reset link has been sent."


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


# ── Register / login ──────────────────────────────────────────────────────────

async def register(
    service: AuthService,
    body: RegisterRequest,
    *,
    ip_address: str | None = None,
) -> RegisterResponse:
    registration = await service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        phone=body.phone,
        date_of_birth=body.date_of_birth,
        gender=body.gender,
        ip_address=ip_address,
    )
    # Delivery of the verification link belongs to the notification service
    logger.info("Verification link issued for user %s", registration.user.id)
    return RegisterResponse(
        message="Account created successfully.",
        user=UserResponse.model_validate(registration.user),
        tokens=_token_response(registration.tokens),
        requires_verification=True,
    )


async def login(
    service: AuthService,
    body: LoginRequest,
    *,
    ip_address: str | None = None,
) -> LoginResponse | TwoFactorChallengeResponse:
    outcome = await service.login(
        email=body.email,
        password=body.password,
        two_factor_code=body.two_factor_code,
        backup_code=body.backup_code,
        ip_address=ip_address,
    )
    if isinstance(outcome, TwoFactorChallenge):
        return TwoFactorChallengeResponse(
            message="Two-factor code required.",
            user_id=outcome.user_id,
        )
    return LoginResponse(
        message="Login successful.",
        user=UserResponse.model_validate(outcome.user),
        tokens=_token_response(outcome.tokens),
    )


async def logout(
    service: AuthService,
    current_user: CurrentIdentity,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    await service.logout(current_user.id, ip_address=ip_address)
    return MessageResponse(message="Logged out successfully.")


async def refresh_token(service: AuthService, body: RefreshRequest) -> RefreshResponse:
    pair = await service.refresh_session(body.refresh_token)
    return RefreshResponse(tokens=_token_response(pair))


# ── Password reset & email verification ──────────────────────────────────────

async def forgot_password(
    service: AuthService,
    body: ForgotPasswordRequest,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    token = await service.request_password_reset(body.email, ip_address=ip_address)
    if token is not None:
        logger.info("Password reset link issued")
    # Same answer whether or not the address exists
    return MessageResponse(message=_RESET_REQUESTED_MESSAGE)


async def reset_password(
    service: AuthService,
    body: ResetPasswordRequest,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    await service.reset_password(body.token, body.new_password, ip_address=ip_address)
    return MessageResponse(message="Password reset successfully.")


async def verify_email(
    service: AuthService,
    token: str,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    await service.verify_email(token, ip_address=ip_address)
    return MessageResponse(message="Email verified successfully.")


# ── Profile & account ─────────────────────────────────────────────────────────

async def get_profile(
    service: AuthService, current_user: CurrentIdentity
) -> ProfileResponse:
    user, patient = await service.get_profile(current_user.id)
    profile = ProfileUserResponse.model_validate(user)
    if patient is not None:
        profile = profile.model_copy(
            update={"patient_profile": PatientProfileResponse.model_validate(patient)}
        )
    return ProfileResponse(user=profile)


async def delete_account(
    service: AuthService,
    current_user: CurrentIdentity,
    body: PasswordConfirmRequest,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    await service.delete_account(current_user.id, password=body.password, ip_address=ip_address)
    return MessageResponse(message="Account deleted.")


# ── Two-factor ────────────────────────────────────────────────────────────────

async def setup_two_factor(
    service: AuthService, current_user: CurrentIdentity
) -> TwoFactorSetupResponse:
    setup = await service.setup_two_factor(current_user.id)
    return TwoFactorSetupResponse(
        message="Two-factor secret generated.",
        secret=setup.secret,
        qr_code=setup.provisioning_uri,
    )


async def enable_two_factor(
    service: AuthService,
    current_user: CurrentIdentity,
    body: EnableTwoFactorRequest,
    *,
    ip_address: str | None = None,
) -> BackupCodesResponse:
    backup_codes = await service.enable_two_factor(
        current_user.id, secret=body.secret, code=body.token, ip_address=ip_address
    )
    return BackupCodesResponse(
        message="Two-factor authentication enabled.",
        backup_codes=backup_codes,
    )


async def disable_two_factor(
    service: AuthService,
    current_user: CurrentIdentity,
    body: PasswordConfirmRequest,
    *,
    ip_address: str | None = None,
) -> MessageResponse:
    await service.disable_two_factor(current_user.id, password=body.password, ip_address=ip_address)
    return MessageResponse(message="Two-factor authentication disabled.")

"""
Identity service — auth router.

Only HTTP concerns live here:
  - Route declarations, HTTP methods, status codes, response_model
  - Dependency injection (auth service, current identity)
  - Forwarding to the controller

Zero business logic. Zero DB queries.
"""
from typing import Union

from fastapi import APIRouter, Depends, Request, status

from shared.auth.dependencies import client_ip
from shared.models.user import CurrentIdentity

from app.auth.controller import (
    delete_account as delete_account_controller,
    disable_two_factor as disable_two_factor_controller,
    enable_two_factor as enable_two_factor_controller,
    forgot_password as forgot_password_controller,
    get_profile as get_profile_controller,
    login as login_controller,
    logout as logout_controller,
    refresh_token as refresh_token_controller,
    register as register_controller,
    reset_password as reset_password_controller,
    setup_two_factor as setup_two_factor_controller,
    verify_email as verify_email_controller,
)
from app.auth.dependencies import get_auth_service, get_current_identity
from app.auth.schemas import (
    BackupCodesResponse,
    EnableTwoFactorRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordConfirmRequest,
    ProfileResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TwoFactorChallengeResponse,
    TwoFactorSetupResponse,
)
from app.auth.service import AuthService
from app.rate_limit import limiter

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Email + Password ──────────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account (email + password)",
)
@limiter.limit("5/15minutes")
async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    return await register_controller(service, body, ip_address=client_ip(request))


@router.post(
    "/login",
    response_model=Union[LoginResponse, TwoFactorChallengeResponse],
    summary="Login with email + password (+ TOTP or backup code when 2FA is on)",
    description=(
        "When two-factor authentication is enabled and no code is supplied the "
        "response is `{requiresTwoFactor: true, userId}` and no tokens are issued."
    ),
)
@limiter.limit("5/15minutes")
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> Union[LoginResponse, TwoFactorChallengeResponse]:
    return await login_controller(service, body, ip_address=client_ip(request))


# ── Token management ──────────────────────────────────────────────────────────

@router.post(
    "/refresh-token",
    response_model=RefreshResponse,
    summary="Exchange a refresh token for a new access + refresh pair",
)
@limiter.limit("10/15minutes")
async def refresh_token(
    request: Request,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    return await refresh_token_controller(service, body)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Log out (client discards its tokens)",
)
async def logout(
    request: Request,
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await logout_controller(service, current_user, ip_address=client_ip(request))


# ── Password reset & email verification ──────────────────────────────────────

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset link",
    description=(
        "Always returns 200 even if the email is not registered (prevents enumeration). "
        "The link expires in 1 hour."
    ),
)
@limiter.limit("3/hour")
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await forgot_password_controller(service, body, ip_address=client_ip(request))


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password using the token from the reset link",
)
@limiter.limit("5/15minutes")
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await reset_password_controller(service, body, ip_address=client_ip(request))


@router.get(
    "/verify-email/{token}",
    response_model=MessageResponse,
    summary="Confirm an email address using the 24-hour verification link",
)
async def verify_email(
    request: Request,
    token: str,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await verify_email_controller(service, token, ip_address=client_ip(request))


# ── Profile & account ─────────────────────────────────────────────────────────

@router.get(
    "/profile",
    response_model=ProfileResponse,
    summary="Current account, with the patient record for patients",
)
async def get_profile(
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    return await get_profile_controller(service, current_user)


@router.delete(
    "/account",
    response_model=MessageResponse,
    summary="Soft-delete the current account (password confirmation required)",
)
async def delete_account(
    request: Request,
    body: PasswordConfirmRequest,
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await delete_account_controller(
        service, current_user, body, ip_address=client_ip(request)
    )


# ── Two-factor ────────────────────────────────────────────────────────────────

@router.get(
    "/2fa/setup",
    response_model=TwoFactorSetupResponse,
    summary="Generate a TOTP secret and otpauth:// URI (not stored until enabled)",
)
async def setup_two_factor(
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> TwoFactorSetupResponse:
    return await setup_two_factor_controller(service, current_user)


@router.post(
    "/2fa/enable",
    response_model=BackupCodesResponse,
    summary="Confirm the secret with a current code; returns 10 single-use backup codes",
)
async def enable_two_factor(
    request: Request,
    body: EnableTwoFactorRequest,
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> BackupCodesResponse:
    return await enable_two_factor_controller(
        service, current_user, body, ip_address=client_ip(request)
    )


@router.post(
    "/2fa/disable",
    response_model=MessageResponse,
    summary="Turn two-factor authentication off (password confirmation required)",
)
@limiter.limit("5/15minutes")
async def disable_two_factor(
    request: Request,
    body: PasswordConfirmRequest,
    current_user: CurrentIdentity = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return await disable_two_factor_controller(
        service, current_user, body, ip_address=client_ip(request)
    )

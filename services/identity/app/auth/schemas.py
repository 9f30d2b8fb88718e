"""
Identity service — Pydantic V2 request/response schemas for the auth domain.

Separation of concerns:
  - *Request  models:  input from the client (strict extra="forbid")
  - *Response models:  output to the client (no write-only fields exposed)

Both sides speak camelCase on the wire (``firstName``, ``refreshToken``);
Python code uses the snake_case attribute names.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.constants import SELF_REGISTRATION_ROLES, Role

from app.auth.constants import (
    PASSWORD_MAX_BYTES,
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    PASSWORD_SPECIAL_CHARS,
    Gender,
)


def check_password_strength(password: str) -> str:
    """Lowercase, uppercase, digit and one of ``@$!%*?&`` are all required."""
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must not exceed {PASSWORD_MAX_BYTES} bytes")
    if not any(c.islower() for c in password):
        raise ValueError("Password must contain a lowercase letter")
    if not any(c.isupper() for c in password):
        raise ValueError("Password must contain an uppercase letter")
    if not any(c.isdigit() for c in password):
        raise ValueError("Password must contain a digit")
    if not any(c in PASSWORD_SPECIAL_CHARS for c in password):
        raise ValueError(f"Password must contain one of {PASSWORD_SPECIAL_CHARS}")
    return password


# ── Shared base ───────────────────────────────────────────────────────────────

class _Base(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class _Response(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Email + Password flow ─────────────────────────────────────────────────────

class RegisterRequest(_Base):
    """Body for POST /auth/register."""

    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: str | None = Field(
        default=None,
        pattern=r"^\+?[0-9 ]{8,20}$",
        description="International format, e.g. +212600000000",
    )
    role: Role = Role.PATIENT
    date_of_birth: date | None = None
    gender: Gender | None = None

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("role")
    @classmethod
    def _self_registration_role(cls, value: Role) -> Role:
        if value not in SELF_REGISTRATION_ROLES:
            raise ValueError("This role cannot be chosen at sign-up")
        return value


class LoginRequest(_Base):
    """Body for POST /auth/login; one of the two second-factor fields when 2FA is on."""

    email: EmailStr
    password: str = Field(min_length=1)
    two_factor_code: str | None = Field(default=None, max_length=10)
    backup_code: str | None = Field(default=None, max_length=20)


# ── Token management ──────────────────────────────────────────────────────────

class RefreshRequest(_Base):
    """Body for POST /auth/refresh-token."""

    refresh_token: str = Field(min_length=1)


# ── Password reset ────────────────────────────────────────────────────────────

class ForgotPasswordRequest(_Base):
    email: EmailStr


class ResetPasswordRequest(_Base):
    token: str = Field(min_length=1, description="Token from the reset link in the email")
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        return check_password_strength(value)


# ── Two-factor ────────────────────────────────────────────────────────────────

class EnableTwoFactorRequest(_Base):
    """Body for POST /auth/2fa/enable: the secret from /2fa/setup and a current code."""

    token: str = Field(pattern=r"^\d{6}$")
    secret: str = Field(min_length=16, max_length=64)


class PasswordConfirmRequest(_Base):
    """Body for POST /auth/2fa/disable and DELETE /auth/account."""

    password: str = Field(min_length=1)


# ── Response models ───────────────────────────────────────────────────────────

class TokenResponse(_Response):
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds


class UserResponse(_Response):
    """Public account view; never includes hashes, secrets or counters."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None = None
    role: Role
    facility_id: uuid.UUID | None = None
    is_active: bool
    is_verified: bool
    two_factor_enabled: bool
    last_login_at: datetime | None = None
    created_at: datetime


class PatientProfileResponse(_Response):
    id: uuid.UUID
    first_name: str
    last_name: str
    date_of_birth: date | None = None
    gender: Gender | None = None
    primary_doctor_id: uuid.UUID | None = None
    primary_facility_id: uuid.UUID | None = None


class ProfileUserResponse(UserResponse):
    patient_profile: PatientProfileResponse | None = None


class ProfileResponse(_Response):
    user: ProfileUserResponse


class RegisterResponse(_Response):
    message: str
    user: UserResponse
    tokens: TokenResponse
    requires_verification: bool = True


class LoginResponse(_Response):
    message: str
    user: UserResponse
    tokens: TokenResponse


class TwoFactorChallengeResponse(_Response):
    """Password accepted but a second factor is still required; no tokens."""

    message: str
    requires_two_factor: bool = True
    user_id: uuid.UUID


class RefreshResponse(_Response):
    tokens: TokenResponse


class TwoFactorSetupResponse(_Response):
    message: str
    secret: str
    # otpauth:// URI; the SPA renders it as a QR code
    qr_code: str


class BackupCodesResponse(_Response):
    message: str
    backup_codes: list[str]


class MessageResponse(_Response):
    """Generic single-message response for informational endpoints."""

    message: str

"""
Identity service — domain-specific HTTP exceptions.

All exceptions use preset status codes, messages and machine-readable codes so
that callers never need to specify these at the call site.  The shared
exception handler renders them as ``{"error": detail, "code": code, **extra}``.
"""
from datetime import datetime
from typing import Any

from fastapi import HTTPException, status


class IdentityError(HTTPException):
    code: str = "SERVER_ERROR"

    def __init__(self, status_code: int, detail: str, **extra: Any) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.extra = extra


# ── Authentication ────────────────────────────────────────────────────────────

class AuthTokenMissing(IdentityError):
    code = "AUTH_TOKEN_MISSING"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Authentication token required.")


class TokenExpired(IdentityError):
    code = "TOKEN_EXPIRED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Token has expired.")


class TokenInvalid(IdentityError):
    code = "INVALID_TOKEN"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Token is invalid.")


class InvalidRefreshToken(IdentityError):
    code = "INVALID_REFRESH_TOKEN"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Refresh token is invalid.")


class UserNotFound(IdentityError):
    code = "USER_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "User not found.")


class InvalidCredentials(IdentityError):
    """Same response for unknown email and wrong password (no enumeration)."""

    code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Invalid email or password.")


class InvalidTwoFactorCode(IdentityError):
    code = "INVALID_2FA_CODE"

    def __init__(self, status_code: int = status.HTTP_401_UNAUTHORIZED) -> None:
        super().__init__(status_code, "Invalid two-factor code.")


class InvalidPassword(IdentityError):
    code = "INVALID_PASSWORD"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Incorrect password.")


# ── Account state ─────────────────────────────────────────────────────────────

class AccountDisabled(IdentityError):
    code = "ACCOUNT_DISABLED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "This account has been disabled.")


class AccountLocked(IdentityError):
    """Too many failed logins; ``lockedUntil`` tells the client when to retry."""

    code = "ACCOUNT_LOCKED"

    def __init__(self, locked_until: datetime | None) -> None:
        super().__init__(
            status.HTTP_423_LOCKED,
            "Account temporarily locked after too many failed login attempts.",
            lockedUntil=locked_until,
        )


# ── Registration / conflict ───────────────────────────────────────────────────

class EmailAlreadyExists(IdentityError):
    code = "EMAIL_ALREADY_EXISTS"

    def __init__(self) -> None:
        super().__init__(status.HTTP_409_CONFLICT, "An account with this email already exists.")


class TwoFactorAlreadyEnabled(IdentityError):
    code = "2FA_ALREADY_ENABLED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, "Two-factor authentication is already enabled.")


class TwoFactorNotEnabled(IdentityError):
    code = "2FA_NOT_ENABLED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, "Two-factor authentication is not enabled.")


# ── One-off tokens (guessable → 400, not 404) ─────────────────────────────────

class InvalidResetToken(IdentityError):
    code = "INVALID_RESET_TOKEN"

    def __init__(self) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, "Password reset token is invalid or has expired.")


class InvalidVerificationToken(IdentityError):
    code = "INVALID_VERIFICATION_TOKEN"

    def __init__(self) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, "Verification token is invalid or has expired.")


# ── Authorization ─────────────────────────────────────────────────────────────

class InsufficientPermissions(IdentityError):
    code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, required: list[str], current: str) -> None:
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            "You do not have permission to access this resource.",
            required=required,
            current=current,
        )


class NoFacilityAssociation(IdentityError):
    code = "NO_FACILITY_ASSOCIATION"

    def __init__(self) -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, "User is not associated with a healthcare facility.")


class FacilityInactive(IdentityError):
    code = "FACILITY_INACTIVE"

    def __init__(self) -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, "Healthcare facility is inactive or does not exist.")


class PatientIdRequired(IdentityError):
    code = "PATIENT_ID_REQUIRED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, "Patient id is required.")


class PatientNotFound(IdentityError):
    code = "PATIENT_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, "Patient not found.")


class PatientAccessDenied(IdentityError):
    code = "PATIENT_ACCESS_DENIED"

    def __init__(self) -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, "You are not allowed to access this patient's data.")


# ── Subscription ──────────────────────────────────────────────────────────────

class NoFacility(IdentityError):
    code = "NO_FACILITY"

    def __init__(self) -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, "No facility associated with this account.")


class FacilityNotFound(IdentityError):
    code = "FACILITY_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, "Facility not found.")


class SubscriptionRequired(IdentityError):
    code = "SUBSCRIPTION_REQUIRED"

    def __init__(self, subscription_status: str) -> None:
        super().__init__(
            status.HTTP_402_PAYMENT_REQUIRED,
            "An active subscription is required.",
            subscriptionStatus=subscription_status,
        )


class SubscriptionExpired(IdentityError):
    code = "SUBSCRIPTION_EXPIRED"

    def __init__(self, expires_at: datetime | None) -> None:
        super().__init__(
            status.HTTP_402_PAYMENT_REQUIRED,
            "The facility subscription has expired.",
            expiresAt=expires_at,
        )

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from shared.auth.config import AuthSettings
from shared.auth.tokens import (
    REFRESH_TOKEN_EXPIRE_SECONDS,
    TokenError,
    TokenFailure,
    TokenService,
)
from shared.constants import Role


@dataclass
class Subject:
    id: uuid.UUID
    email: str
    role: Role
    facility_id: uuid.UUID | None = None


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(
        secret="access-secret",
        refresh_secret="refresh-secret",
        issuer="platform",
        audience="platform-users",
        refresh_audience="platform-refresh",
        expires_in=3600,
    )


@pytest.fixture
def tokens(auth_settings: AuthSettings) -> TokenService:
    return TokenService(auth_settings)


@pytest.fixture
def subject() -> Subject:
    return Subject(
        id=uuid.uuid4(), email="doc@example.com", role=Role.DOCTOR, facility_id=uuid.uuid4()
    )


def test_access_token_claims(tokens: TokenService, subject: Subject) -> None:
    claims = tokens.verify_access_token(tokens.issue_access_token(subject))
    assert claims["id"] == str(subject.id)
    assert claims["email"] == "doc@example.com"
    assert claims["role"] == "doctor"
    assert claims["facilityId"] == str(subject.facility_id)
    assert claims["iss"] == "platform"
    assert claims["aud"] == "platform-users"
    assert claims["exp"] - claims["iat"] == 3600


def test_refresh_token_carries_no_role(tokens: TokenService, subject: Subject) -> None:
    claims = tokens.verify_refresh_token(tokens.issue_refresh_token(subject))
    assert claims["id"] == str(subject.id)
    assert "role" not in claims
    assert "email" not in claims
    assert claims["aud"] == "platform-refresh"
    assert claims["exp"] - claims["iat"] == REFRESH_TOKEN_EXPIRE_SECONDS


def test_access_and_refresh_tokens_are_not_interchangeable(
    tokens: TokenService, subject: Subject
) -> None:
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_refresh_token(tokens.issue_access_token(subject))
    assert excinfo.value.reason is TokenFailure.INVALID

    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(tokens.issue_refresh_token(subject))
    assert excinfo.value.reason is TokenFailure.INVALID


def test_expired_token(tokens: TokenService, subject: Subject) -> None:
    issued = datetime.now(timezone.utc) - timedelta(hours=2)
    token = tokens.issue_access_token(subject, now=issued)
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(token)
    assert excinfo.value.reason is TokenFailure.EXPIRED


def test_wrong_signature_is_invalid(
    auth_settings: AuthSettings, tokens: TokenService, subject: Subject
) -> None:
    forged = TokenService(auth_settings.model_copy(update={"secret": "other"}))
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(forged.issue_access_token(subject))
    assert excinfo.value.reason is TokenFailure.INVALID


def test_wrong_issuer_is_invalid(
    auth_settings: AuthSettings, tokens: TokenService, subject: Subject
) -> None:
    foreign = TokenService(auth_settings.model_copy(update={"issuer": "elsewhere"}))
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(foreign.issue_access_token(subject))
    assert excinfo.value.reason is TokenFailure.INVALID


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b"])
def test_non_jwt_input_is_malformed(tokens: TokenService, token: str | None) -> None:
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(token)
    assert excinfo.value.reason is TokenFailure.MALFORMED


def test_missing_id_claim_is_malformed(tokens: TokenService) -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "email": "x@example.com",
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "iss": "platform",
            "aud": "platform-users",
        },
        "access-secret",
        algorithm="HS256",
    )
    with pytest.raises(TokenError) as excinfo:
        tokens.verify_access_token(token)
    assert excinfo.value.reason is TokenFailure.MALFORMED

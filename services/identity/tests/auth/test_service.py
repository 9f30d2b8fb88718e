from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.access.models import Patient
from app.access.store import PatientStore
from app.auth.lockout import LockoutPolicy
from app.auth.service import AuthResult, AuthService, TwoFactorChallenge
from app.auth.store import IdentityStore
from app.auth.totp import TOTPGenerator
from app.auth.utils import PasswordHasher
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
)
from shared.auth.tokens import TokenService
from shared.constants import Role
from shared.database.types import utcnow

PASSWORD = "Abcd123!"


def _build_service(
    session: AsyncSession,
    hasher: PasswordHasher,
    token_service: TokenService,
    settings: Settings,
) -> AuthService:
    store = IdentityStore(session, hasher)
    return AuthService(
        store=store,
        patients=PatientStore(session),
        lockout=LockoutPolicy(
            store,
            max_attempts=settings.max_login_attempts,
            lockout_duration=timedelta(seconds=settings.lockout_time),
        ),
        tokens=token_service,
        totp=TOTPGenerator(),
        settings=settings,
    )


@pytest.fixture
def service(
    db_session: AsyncSession,
    hasher: PasswordHasher,
    token_service: TokenService,
    settings: Settings,
) -> AuthService:
    return _build_service(db_session, hasher, token_service, settings)


async def _register(service: AuthService, email: str = "a@x.com", **kwargs):
    fields = {"password": PASSWORD, "first_name": "Amina", "last_name": "Bennani"}
    fields.update(kwargs)
    registration = await service.register(email=email, **fields)
    await service.store.commit()
    return registration


async def _enable_2fa(service: AuthService, user_id) -> tuple[str, list[str]]:
    setup = await service.setup_two_factor(user_id)
    code = service.totp.generate(setup.secret)
    backup_codes = await service.enable_two_factor(user_id, secret=setup.secret, code=code)
    await service.store.commit()
    return setup.secret, backup_codes


# ── Registration ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_register_patient_creates_patient_record(
    service: AuthService, db_session: AsyncSession
) -> None:
    registration = await _register(service, email="A@X.com")
    user = registration.user
    assert user.email == "a@x.com"
    assert user.role is Role.PATIENT
    assert user.is_verified is False
    assert user.verification_token_hash is not None
    assert user.verification_token_hash != registration.verification_token

    patient = await PatientStore(db_session).find_by_user_id(user.id)
    assert patient is not None
    assert patient.first_name == "Amina"

    claims = service.tokens.verify_access_token(registration.tokens.access_token)
    assert claims["role"] == "patient"


@pytest.mark.asyncio
async def test_register_staff_has_no_patient_record(
    service: AuthService, db_session: AsyncSession
) -> None:
    await _register(service, email="nurse@x.com", role=Role.NURSE)
    count = (await db_session.execute(select(func.count()).select_from(Patient))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_register_duplicate_email(service: AuthService) -> None:
    await _register(service)
    with pytest.raises(EmailAlreadyExists):
        await service.register(
            email="A@x.com", password=PASSWORD, first_name="Other", last_name="Person"
        )


@pytest.mark.asyncio
async def test_deleted_account_keeps_email_reserved(service: AuthService) -> None:
    registration = await _register(service)
    await service.delete_account(registration.user.id, password=PASSWORD)
    await service.store.commit()

    with pytest.raises(EmailAlreadyExists):
        await service.register(
            email="a@x.com", password=PASSWORD, first_name="New", last_name="Owner"
        )
    with pytest.raises(InvalidCredentials):
        await service.login(email="a@x.com", password=PASSWORD)


@pytest.mark.asyncio
async def test_verify_email(service: AuthService) -> None:
    registration = await _register(service)
    user = await service.verify_email(registration.verification_token)
    assert user.is_verified is True
    assert user.verification_token_hash is None

    with pytest.raises(InvalidVerificationToken):
        await service.verify_email(registration.verification_token)


# ── Login & lockout ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_success_records_last_login(service: AuthService) -> None:
    await _register(service)
    result = await service.login(email="a@x.com", password=PASSWORD, ip_address="10.0.0.1")
    assert isinstance(result, AuthResult)
    assert result.user.last_login_at is not None
    assert result.user.last_login_ip == "10.0.0.1"
    assert result.tokens.expires_in == service.settings.jwt_expires_in


@pytest.mark.asyncio
async def test_unknown_email_and_wrong_password_look_the_same(service: AuthService) -> None:
    await _register(service)
    with pytest.raises(InvalidCredentials) as unknown:
        await service.login(email="nobody@x.com", password=PASSWORD)
    with pytest.raises(InvalidCredentials) as wrong:
        await service.login(email="a@x.com", password="Wrong123!")
    assert unknown.value.detail == wrong.value.detail
    assert unknown.value.status_code == wrong.value.status_code == 401


@pytest.mark.asyncio
async def test_unknown_email_still_pays_for_a_bcrypt_check(
    service: AuthService, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = []
    real = service.store.hasher.verify_placeholder

    def _counting_placeholder() -> bool:
        calls.append(1)
        return real()

    monkeypatch.setattr(service.store.hasher, "verify_placeholder", _counting_placeholder)
    with pytest.raises(InvalidCredentials):
        await service.login(email="nobody@x.com", password=PASSWORD)
    assert calls == [1]


@pytest.mark.asyncio
async def test_lockout_after_five_failures(service: AuthService) -> None:
    registration = await _register(service)

    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await service.login(email="a@x.com", password="Wrong123!")

    with pytest.raises(AccountLocked) as excinfo:
        await service.login(email="a@x.com", password=PASSWORD)
    assert excinfo.value.extra["lockedUntil"] == registration.user.locked_until

    # Simulate the lock elapsing
    await service.store.update(
        registration.user.id, locked_until=utcnow() - timedelta(seconds=1)
    )
    result = await service.login(email="a@x.com", password=PASSWORD)
    assert isinstance(result, AuthResult)
    assert result.user.failed_login_attempts == 0
    assert result.user.locked_until is None


@pytest.mark.asyncio
async def test_inactive_account_rejected_after_password_check(service: AuthService) -> None:
    registration = await _register(service)
    await service.store.update(registration.user.id, is_active=False)

    with pytest.raises(AccountDisabled):
        await service.login(email="a@x.com", password=PASSWORD)
    with pytest.raises(InvalidCredentials):
        await service.login(email="a@x.com", password="Wrong123!")


# ── Two-factor ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_with_2fa_requires_second_factor(service: AuthService) -> None:
    registration = await _register(service)
    secret, backup_codes = await _enable_2fa(service, registration.user.id)
    assert len(backup_codes) == 10

    challenge = await service.login(email="a@x.com", password=PASSWORD)
    assert isinstance(challenge, TwoFactorChallenge)
    assert challenge.user_id == registration.user.id

    result = await service.login(
        email="a@x.com", password=PASSWORD, two_factor_code=service.totp.generate(secret)
    )
    assert isinstance(result, AuthResult)


@pytest.mark.asyncio
async def test_wrong_2fa_code_counts_as_failure(service: AuthService) -> None:
    registration = await _register(service)
    secret, _ = await _enable_2fa(service, registration.user.id)
    bad_code = str((int(service.totp.generate(secret)) + 1) % 1_000_000).zfill(6)

    with pytest.raises(InvalidTwoFactorCode) as excinfo:
        await service.login(email="a@x.com", password=PASSWORD, two_factor_code=bad_code)
    assert excinfo.value.status_code == 401
    assert registration.user.failed_login_attempts == 1


@pytest.mark.asyncio
async def test_backup_code_is_single_use(service: AuthService) -> None:
    registration = await _register(service)
    _, backup_codes = await _enable_2fa(service, registration.user.id)

    result = await service.login(email="a@x.com", password=PASSWORD, backup_code=backup_codes[0])
    assert isinstance(result, AuthResult)
    assert len(result.user.backup_codes) == 9

    with pytest.raises(InvalidTwoFactorCode):
        await service.login(email="a@x.com", password=PASSWORD, backup_code=backup_codes[0])

    result = await service.login(
        email="a@x.com", password=PASSWORD, backup_code=backup_codes[1].lower()
    )
    assert isinstance(result, AuthResult)


@pytest.mark.asyncio
async def test_backup_code_spent_by_concurrent_logins_only_once(
    service: AuthService,
    session_factory: async_sessionmaker[AsyncSession],
    hasher: PasswordHasher,
    token_service: TokenService,
    settings: Settings,
) -> None:
    registration = await _register(service)
    _, backup_codes = await _enable_2fa(service, registration.user.id)

    async with session_factory() as first_session, session_factory() as second_session:
        first = _build_service(first_session, hasher, token_service, settings)
        second = _build_service(second_session, hasher, token_service, settings)
        # Both requests have read the account before either one writes
        assert len((await first.store.find_by_email("a@x.com")).backup_codes) == 10
        assert len((await second.store.find_by_email("a@x.com")).backup_codes) == 10

        result = await first.login(email="a@x.com", password=PASSWORD, backup_code=backup_codes[0])
        assert isinstance(result, AuthResult)
        await first.store.commit()

        with pytest.raises(InvalidTwoFactorCode):
            await second.login(email="a@x.com", password=PASSWORD, backup_code=backup_codes[0])

        stored = await second.store.find_by_id(registration.user.id)
        assert len(stored.backup_codes) == 9
        assert stored.failed_login_attempts == 1


@pytest.mark.asyncio
async def test_setup_refused_when_already_enabled(service: AuthService) -> None:
    registration = await _register(service)
    await _enable_2fa(service, registration.user.id)
    with pytest.raises(TwoFactorAlreadyEnabled):
        await service.setup_two_factor(registration.user.id)


@pytest.mark.asyncio
async def test_setup_does_not_store_secret(service: AuthService) -> None:
    registration = await _register(service)
    setup = await service.setup_two_factor(registration.user.id)
    assert setup.provisioning_uri.startswith("otpauth://totp/")
    assert registration.user.two_factor_secret is None
    assert registration.user.two_factor_enabled is False


@pytest.mark.asyncio
async def test_enable_with_invalid_code(service: AuthService) -> None:
    registration = await _register(service)
    setup = await service.setup_two_factor(registration.user.id)
    with pytest.raises(InvalidTwoFactorCode) as excinfo:
        await service.enable_two_factor(registration.user.id, secret=setup.secret, code="000000x")
    assert excinfo.value.status_code == 400
    assert registration.user.two_factor_enabled is False


@pytest.mark.asyncio
async def test_disable_2fa(service: AuthService) -> None:
    registration = await _register(service)
    await _enable_2fa(service, registration.user.id)

    with pytest.raises(InvalidPassword):
        await service.disable_two_factor(registration.user.id, password="Wrong123!")

    await service.disable_two_factor(registration.user.id, password=PASSWORD)
    user = registration.user
    assert user.two_factor_enabled is False
    assert user.two_factor_secret is None
    assert user.backup_codes is None

    with pytest.raises(TwoFactorNotEnabled):
        await service.disable_two_factor(registration.user.id, password=PASSWORD)


# ── Refresh ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_refresh_reflects_current_role(service: AuthService) -> None:
    registration = await _register(service)
    await service.store.update(registration.user.id, role=Role.DOCTOR)

    pair = await service.refresh_session(registration.tokens.refresh_token)
    assert service.tokens.verify_access_token(pair.access_token)["role"] == "doctor"


@pytest.mark.asyncio
async def test_refresh_rejects_inactive_account(service: AuthService) -> None:
    registration = await _register(service)
    await service.store.update(registration.user.id, is_active=False)
    with pytest.raises(InvalidRefreshToken):
        await service.refresh_session(registration.tokens.refresh_token)


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(service: AuthService) -> None:
    registration = await _register(service)
    with pytest.raises(InvalidRefreshToken):
        await service.refresh_session(registration.tokens.access_token)


# ── Password reset ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_password_reset_flow_clears_lockout(service: AuthService) -> None:
    await _register(service)
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            await service.login(email="a@x.com", password="Wrong123!")

    token = await service.request_password_reset("a@x.com")
    assert token is not None
    user = await service.reset_password(token, "Fresh456!")
    assert user.failed_login_attempts == 0
    assert user.locked_until is None
    assert user.password_reset_token_hash is None

    with pytest.raises(InvalidCredentials):
        await service.login(email="a@x.com", password=PASSWORD)
    assert isinstance(await service.login(email="a@x.com", password="Fresh456!"), AuthResult)

    with pytest.raises(InvalidResetToken):
        await service.reset_password(token, "Another789!")


@pytest.mark.asyncio
async def test_password_reset_for_unknown_email(service: AuthService) -> None:
    assert await service.request_password_reset("nobody@x.com") is None


@pytest.mark.asyncio
async def test_expired_reset_token(service: AuthService) -> None:
    registration = await _register(service)
    token = await service.request_password_reset("a@x.com")
    await service.store.update(
        registration.user.id, password_reset_expires_at=utcnow() - timedelta(seconds=1)
    )
    with pytest.raises(InvalidResetToken):
        await service.reset_password(token, "Fresh456!")


# ── Profile ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_profile_includes_patient_record(service: AuthService) -> None:
    registration = await _register(service)
    user, patient = await service.get_profile(registration.user.id)
    assert user.id == registration.user.id
    assert patient is not None and patient.user_id == user.id

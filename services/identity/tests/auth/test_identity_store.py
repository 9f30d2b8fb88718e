import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.store import IdentityStore
from app.auth.utils import hash_token
from shared.constants import Role
from shared.database.types import utcnow


@pytest.mark.asyncio
async def test_create_hashes_password_and_normalises_email(store: IdentityStore) -> None:
    user = await store.create(
        email="  Mixed.Case@Example.COM ",
        password="Abcd123!",
        first_name="Ada",
        last_name="Lovelace",
    )
    assert user.email == "mixed.case@example.com"
    assert user.password_hash != "Abcd123!"
    assert store.hasher.verify("Abcd123!", user.password_hash)
    assert user.role is Role.PATIENT
    assert user.failed_login_attempts == 0
    assert user.is_active and not user.is_verified


@pytest.mark.asyncio
async def test_create_refuses_precomputed_hash(store: IdentityStore) -> None:
    with pytest.raises(ValueError):
        await store.create(
            email="a@example.com", password_hash="x", first_name="A", last_name="B"
        )


@pytest.mark.asyncio
async def test_create_requires_password(store: IdentityStore) -> None:
    with pytest.raises(ValueError):
        await store.create(email="a@example.com", first_name="A", last_name="B")


@pytest.mark.asyncio
async def test_find_by_email_is_case_insensitive(store: IdentityStore, make_user) -> None:
    user = await make_user(email="jane@example.com")
    found = await store.find_by_email("JANE@example.com ")
    assert found is not None and found.id == user.id


@pytest.mark.asyncio
async def test_update_rehashes_password(store: IdentityStore, make_user) -> None:
    user = await make_user()
    old_hash = user.password_hash
    updated = await store.update(user.id, password="Newpass1!")
    assert updated.password_hash != old_hash
    assert store.hasher.verify("Newpass1!", updated.password_hash)


@pytest.mark.asyncio
async def test_update_unknown_user(store: IdentityStore) -> None:
    with pytest.raises(LookupError):
        await store.update(uuid.uuid4(), first_name="X")


@pytest.mark.asyncio
async def test_soft_deleted_users_are_hidden_but_reserved(
    store: IdentityStore, make_user
) -> None:
    user = await make_user(email="gone@example.com")
    await store.soft_delete(user.id)
    await store.commit()

    assert await store.find_by_email("gone@example.com") is None
    assert await store.find_by_id(user.id) is None
    hidden = await store.find_by_email("gone@example.com", include_deleted=True)
    assert hidden is not None
    assert hidden.deleted_at is not None
    assert hidden.is_active is False


@pytest.mark.asyncio
async def test_token_lookups_respect_expiry(store: IdentityStore, make_user) -> None:
    user = await make_user()
    await store.update(
        user.id,
        password_reset_token_hash=hash_token("reset"),
        password_reset_expires_at=utcnow() + timedelta(hours=1),
        verification_token_hash=hash_token("verify"),
        verification_token_expires_at=utcnow() - timedelta(seconds=1),
    )
    await store.commit()

    found = await store.find_by_reset_token(hash_token("reset"))
    assert found is not None and found.id == user.id
    assert await store.find_by_reset_token(hash_token("other")) is None
    assert await store.find_by_verification_token(hash_token("verify")) is None


@pytest.mark.asyncio
async def test_increment_is_applied_in_database(
    store: IdentityStore, db_session: AsyncSession, make_user
) -> None:
    user = await make_user()
    until = utcnow() + timedelta(minutes=15)

    for _ in range(2):
        await store.increment_failed_attempts(user, max_attempts=3, locked_until=until)
    assert user.failed_login_attempts == 2
    assert user.locked_until is None

    await store.increment_failed_attempts(user, max_attempts=3, locked_until=until)
    assert user.failed_login_attempts == 3
    assert user.locked_until is not None
    assert abs((user.locked_until - until).total_seconds()) < 1

    stored = (await db_session.execute(select(User.failed_login_attempts))).scalar_one()
    assert stored == 3


@pytest.mark.asyncio
async def test_reset_failed_attempts(store: IdentityStore, make_user) -> None:
    user = await make_user()
    await store.increment_failed_attempts(
        user, max_attempts=1, locked_until=utcnow() + timedelta(minutes=5)
    )
    await store.reset_failed_attempts(user)
    assert user.failed_login_attempts == 0
    assert user.locked_until is None

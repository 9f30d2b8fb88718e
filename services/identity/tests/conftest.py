import os

# Must be set before app.rate_limit is imported
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENV_NAME", "test")

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.access.models  # noqa: E402,F401 - register with Base
import app.auth.models  # noqa: E402,F401 - register with Base
from app.auth.models import User  # noqa: E402
from app.auth.store import IdentityStore  # noqa: E402
from app.auth.utils import PasswordHasher  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.database import get_db  # noqa: E402
from app.main import create_app  # noqa: E402
from shared.auth.tokens import TokenService  # noqa: E402
from shared.database.postgres import Base, get_session  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"
DEFAULT_PASSWORD = "Abcd123!"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        identity_database_url=TEST_DATABASE_URL,
        env_name="test",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        bcrypt_rounds=4,  # bcrypt minimum; keeps the suite fast
        max_login_attempts=5,
        lockout_time=900,
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    # One shared in-memory connection so every session sees the same tables
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def store(db_session: AsyncSession, hasher: PasswordHasher) -> IdentityStore:
    return IdentityStore(db_session, hasher)


@pytest.fixture
def token_service(settings: Settings) -> TokenService:
    return TokenService(settings.auth_settings())


@pytest.fixture
def make_user(store: IdentityStore) -> Callable[..., Awaitable[User]]:
    """Create and commit an account; keyword arguments override the defaults."""
    counter = {"n": 0}

    async def _make_user(**fields: Any) -> User:
        counter["n"] += 1
        values: dict[str, Any] = {
            "email": f"user{counter['n']}@example.com",
            "password": DEFAULT_PASSWORD,
            "first_name": "Test",
            "last_name": f"User{counter['n']}",
        }
        values.update(fields)
        user = await store.create(**values)
        await store.commit()
        return user

    return _make_user


@pytest.fixture
def auth_header(token_service: TokenService) -> Callable[[User], dict[str, str]]:
    def _auth_header(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_service.issue_access_token(user)}"}

    return _auth_header


@pytest.fixture
def app(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> FastAPI:
    application = create_app(settings)

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async for session in get_session(session_factory):
            yield session

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_settings] = lambda: settings
    return application


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

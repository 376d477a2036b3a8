"""Pytest configuration and fixtures.

Each database test gets a fresh SQLite file (via aiosqlite) created from
the ORM metadata, so no external database server is needed.
"""

import os
import tempfile
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-secret-key-" + "0" * 32
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'querylab_app.db')}"
)
os.environ["CORS_ORIGINS"] = "http://localhost:3000"

TEST_USERNAME = "testuser"
TEST_EMAIL = "testuser@example.com"
TEST_PASSWORD = "testpassword123"


# --- Revocation Registry Reset ---


@pytest.fixture(autouse=True)
def reset_revocation_registry():
    """Clear the process-wide revocation registry around each test."""
    from querylab.services.revocation import RevocationRegistry

    RevocationRegistry.get_instance().clear()
    yield
    RevocationRegistry.get_instance().clear()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a database engine on a throwaway SQLite file."""
    from querylab.models.base import BaseModel

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""
    from querylab.core.database import get_db
    from querylab.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# --- Pytest Hooks for Auto-Marking ---


def pytest_collection_modifyitems(config, items):
    """Mark tests using database fixtures as 'integration', everything else as 'unit'."""
    integration_fixtures = {"db_session", "db_engine", "async_client", "session_maker"}

    for item in items:
        if any(mark.name in ("unit", "integration") for mark in item.iter_markers()):
            continue

        if hasattr(item, "fixturenames") and integration_fixtures & set(item.fixturenames):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# --- User Helpers ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test users."""
    from querylab.models.user import User
    from querylab.services.passwords import hash_password

    async def _create_user(
        username: str = TEST_USERNAME,
        email: str = TEST_EMAIL,
        password: str = TEST_PASSWORD,
    ) -> User:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def credentials() -> dict[str, str]:
    """Credentials of the default test user."""
    return {"username": TEST_USERNAME, "email": TEST_EMAIL, "password": TEST_PASSWORD}


@pytest_asyncio.fixture
async def test_user(user_factory):
    """Create a test user."""
    return await user_factory()


@pytest_asyncio.fixture
async def access_token(test_user) -> str:
    """Access token for the test user."""
    from querylab.services.auth import create_access_token

    return create_access_token(test_user.id, test_user.username)


@pytest_asyncio.fixture
async def auth_headers(access_token) -> dict[str, str]:
    """Headers with a bearer token for authenticated requests."""
    return {"Authorization": f"Bearer {access_token}"}

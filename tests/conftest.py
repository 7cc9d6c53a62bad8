"""Global pytest fixtures for TaskFlow.

Provides:
- An in-memory SQLite database (aiosqlite) created fresh per test
- Async sessions configured like the application's
- An httpx AsyncClient wired to the FastAPI app with get_db overridden
- Users and actors for each role
"""

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("WHATSAPP_ENABLED", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskflow.auth import Actor
from taskflow.config import get_settings
from taskflow.database import enable_sqlite_savepoints, get_db
from taskflow.models import Base, User
from taskflow.services.badge_service import ensure_badge_catalog
from tests.factories import UserFactory

get_settings.cache_clear()


# ===========================================
# DATABASE FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session on a database that already holds the badge catalog."""
    await ensure_badge_catalog(db_session)
    return db_session


# ===========================================
# USERS
# ===========================================


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(db_session, name="Ada Admin", role="admin")


@pytest_asyncio.fixture
async def member_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(db_session, name="Maya Member")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await UserFactory.create(db_session, name="Omar Other")


@pytest.fixture
def admin_actor(admin_user: User) -> Actor:
    return Actor.from_user(admin_user)


@pytest.fixture
def member_actor(member_user: User) -> Actor:
    return Actor.from_user(member_user)


@pytest.fixture
def other_actor(other_user: User) -> Actor:
    return Actor.from_user(other_user)


# ===========================================
# HTTP CLIENT
# ===========================================


@pytest_asyncio.fixture
async def client(session_factory, seeded_db) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app, each request on its own session."""
    from taskflow.main import app

    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

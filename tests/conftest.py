"""Shared fixtures for CoParent API tests.

Uses SQLite (aiosqlite) by default, so no PostgreSQL is required.
Set TEST_DATABASE_URL to override (e.g. for CI with real PostgreSQL).
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Ensure settings can be loaded without .env
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests")
os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1/0")

from coparent.database import Base  # noqa: E402

# ---------------------------------------------------------------------------
# Engine: SQLite in-memory with StaticPool (shared across connections)
# ---------------------------------------------------------------------------

_engine_kwargs = {}
if TEST_DATABASE_URL.startswith("sqlite"):
    _engine_kwargs = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }

_engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs)
_TestSession = async_sessionmaker(
    bind=_engine, class_=AsyncSession, expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Session-scoped: create / drop tables
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(scope="session", autouse=True)
async def _setup_tables():
    import coparent.models  # noqa: F401  populate Base.metadata

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await _engine.dispose()


# ---------------------------------------------------------------------------
# Reset rate-limiter counters before every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Clear in-memory rate-limit counters so tests never block each other."""
    from coparent.core.rate_limit import limiter

    storage = getattr(limiter, "_storage", None)
    if storage is not None and hasattr(storage, "reset"):
        storage.reset()


# ---------------------------------------------------------------------------
# Per-test session with rollback
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def db_session():
    async with _TestSession() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# HTTP test client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def client(db_session: AsyncSession):
    from coparent.database import get_db
    from coparent.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Profiles and tokens
# ---------------------------------------------------------------------------

def auth_headers_for(profile) -> dict[str, str]:
    """Bearer header carrying the claims the identity provider would issue."""
    from coparent.core.security import create_access_token

    token = create_access_token({
        "sub": str(profile.auth_user_id),
        "email": profile.email,
        "name": profile.display_name,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_profile(db_session: AsyncSession):
    """Factory creating a persisted profile. Returns an async callable."""
    from coparent.models.profile import Profile

    async def _make(
        *,
        email: str | None = None,
        name: str = "Test Parent",
        id: uuid.UUID | None = None,
        **fields,
    ) -> Profile:
        suffix = uuid.uuid4().hex[:8]
        profile = Profile(
            id=id or uuid.uuid4(),
            auth_user_id=uuid.uuid4(),
            email=email or f"user-{suffix}@example.com",
            display_name=name,
            **fields,
        )
        db_session.add(profile)
        await db_session.flush()
        return profile

    return _make


@pytest.fixture()
def premium_fields() -> dict:
    return {"subscription_tier": "power", "subscription_status": "active"}


@pytest.fixture()
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture()
def past(now) -> datetime:
    return now - timedelta(days=1)


@pytest.fixture()
def auth_headers():
    return auth_headers_for

import os
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from portal_auth.core.auth import hash_password
from portal_auth.core.config import settings
from portal_auth.models import Client, User
from portal_auth.models.base import Base

# In-memory SQLite by default; point at Postgres with TEST_DATABASE_URL
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Test user IDs (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

TEST_CLIENT_EMAIL = "maria.rossi@gmail.com"
TEST_CLIENT_CODE = "CLI00001"
TEST_PASSWORD = "Str0ng!passw0rd"  # nosec B105

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
    extra_claims: dict | None = None,
) -> str:
    """Create a signed access JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.
        extra_claims: Claims merged into the payload (e.g. ``pwr``).

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": iat or now,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a fresh test database with all tables."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client_user(db_session: AsyncSession) -> User:
    """Portal user (client population) with a password."""
    user = User(
        id=TEST_USER_ID,
        email=TEST_CLIENT_EMAIL,
        name="Maria Rossi",
        is_client=True,
        email_verified=datetime.now(UTC),
        password_hash=hash_password(TEST_PASSWORD),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Staff user with the admin flag (not a portal client)."""
    user = User(
        id=TEST_ADMIN_ID,
        email="admin@example.com",
        name="Admin",
        is_admin=True,
        email_verified=datetime.now(UTC),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def client_identity(db_session: AsyncSession) -> Client:
    """Active client record CLI00001 without a portal account."""
    client = Client(
        client_code=TEST_CLIENT_CODE,
        name="Maria Rossi",
        email=TEST_CLIENT_EMAIL,
        phone="+39 333-123.4567",
    )
    db_session.add(client)
    await db_session.commit()
    await db_session.refresh(client)
    return client


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated HTTP client wired to the test database.

    Redirects are not followed so link redirects can be inspected.
    """
    from portal_auth.core.database import get_db
    from portal_auth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=False,
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def auth_settings() -> Iterator[None]:
    """Sign tokens with the test secret; restore link settings afterwards."""
    original_secret = settings.auth_secret
    original_flow = settings.auth_flow_type
    original_backend = settings.backend_url
    original_frontend = settings.frontend_url
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.auth_flow_type = "implicit"
    settings.backend_url = "http://test"
    settings.frontend_url = "http://portal.test"

    yield

    settings.auth_secret = original_secret
    settings.auth_flow_type = original_flow
    settings.backend_url = original_backend
    settings.frontend_url = original_frontend


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.

    Yields:
        None (autouse fixture).
    """
    from portal_auth.core.rate_limiting import limiter

    # Store original state and disable
    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    # Restore original state
    limiter.enabled = original_enabled

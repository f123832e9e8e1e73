import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

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

from masar.core.config import settings
from masar.core.rate_limiting import limiter
from masar.models.base import Base
from tests.fakes import (
    FakeCodeStore,
    FakeTokenStore,
    FakeUserStore,
    RecordingMailer,
)

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    audience: str | None = None,
) -> str:
    """Create a signed session JWT like the external session provider does.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        audience: aud claim. Defaults to settings.auth_audience.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": audience or settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on the configured port, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on port {settings.database_port}. "
            "Start database with: docker compose up -d"
        )


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Turn the shared limiter off so request counts do not leak across tests.

    test_rate_limiting.py switches it back on where limits are under test.
    """
    original = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = original
    limiter.reset()


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# In-memory collaborators
# =============================================================================


@pytest.fixture
def user_store() -> FakeUserStore:
    """In-memory users table."""
    return FakeUserStore()


@pytest.fixture
def code_store() -> FakeCodeStore:
    """In-memory verification_codes table."""
    return FakeCodeStore()


@pytest.fixture
def token_store() -> FakeTokenStore:
    """In-memory verification_tokens table."""
    return FakeTokenStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    """Email transport that records every message."""
    return RecordingMailer()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    user_store: FakeUserStore,
    code_store: FakeCodeStore,
    token_store: FakeTokenStore,
    mailer: RecordingMailer,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to in-memory stores.

    Sets up:
    - get_db yields an AsyncMock session (commit/rollback are no-ops)
    - Repositories replaced by the in-memory fakes
    - Email sender replaced by RecordingMailer
    - Session JWT verification with the test secret

    No CSRF token and no session cookie are set; see csrf_client and
    auth_client.

    Yields:
        AsyncClient for making API requests.
    """
    from masar.api import deps
    from masar.core.database import get_db
    from masar.main import app

    async def override_get_db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_user_repository] = lambda: user_store
    app.dependency_overrides[deps.get_code_repository] = lambda: code_store
    app.dependency_overrides[deps.get_token_repository] = lambda: token_store
    app.dependency_overrides[deps.get_email_sender] = lambda: mailer

    original_auth_secret = settings.auth_secret
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_secret = original_auth_secret
    app.dependency_overrides.clear()


async def attach_csrf_token(ac: AsyncClient) -> str:
    """Fetch a CSRF token and send it on every later request from this client.

    The cookie half is stored in the client's cookie jar by the response.

    Returns:
        The token value.
    """
    resp = await ac.get("/api/v1/csrf")
    token = resp.json()["data"]["token"]
    ac.headers[settings.csrf_header_name] = token
    return token


@pytest_asyncio.fixture
async def csrf_client(client: AsyncClient) -> AsyncClient:
    """Unauthenticated client carrying a valid CSRF cookie and header."""
    await attach_csrf_token(client)
    return client


@pytest_asyncio.fixture
async def auth_client(csrf_client: AsyncClient) -> AsyncClient:
    """CSRF-ready client with a valid session cookie for TEST_USER_ID."""
    csrf_client.cookies.set(settings.auth_cookie_name, create_test_jwt(TEST_USER_ID))
    return csrf_client

import socket
from collections.abc import AsyncGenerator, Callable, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlsplit

import argon2
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gatekeeper.core.config import Settings
from gatekeeper.core.passwords import PasswordHasher
from gatekeeper.models import Base

# Settings used by every test. The API key is a placeholder: outbound mail
# is always patched out.
TEST_SETTINGS = Settings(
    frontend_url="https://app.example.test",
    resend_api_key=SecretStr("re_test_key"),  # nosec B106  # gitleaks:allow
    machine_id="2a",
)

# Use separate test database
TEST_DATABASE_URL = TEST_SETTINGS.database_url.replace(
    TEST_SETTINGS.database_name, f"{TEST_SETTINGS.database_name}_test"
)

# A fixed instant for clock-driven tests
FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def fast_hasher() -> PasswordHasher:
    """Argon2id hasher with minimal cost, for tests only."""
    return PasswordHasher(
        argon2.PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)
    )


def token_from_link(link: str) -> str:
    """Extract the raw token from a delivery link."""
    return parse_qs(urlsplit(link).query)["token"][0]


class FakeClock:
    """Manually advanced clock for services under test."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    Provides clear skip message to help diagnose CI/local issues.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest.fixture
def test_settings() -> Settings:
    return TEST_SETTINGS


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


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
# API Test Fixtures
# =============================================================================


@pytest.fixture
def sent_mail() -> Iterator[AsyncMock]:
    """Replace the Resend call; each call records (settings, kind, to, link)."""
    with patch(
        "gatekeeper.core.email.send_notification", new_callable=AsyncMock
    ) as mock_send:
        yield mock_send


@pytest.fixture
def last_token(sent_mail: AsyncMock) -> Callable[[], str]:
    """Return the raw token carried by the most recent notification."""

    def _last_token() -> str:
        assert sent_mail.await_count > 0, "no notification was sent"
        return token_from_link(sent_mail.await_args.args[3])

    return _last_token


@pytest_asyncio.fixture
async def client(
    db_engine,
    sent_mail,  # noqa: ARG001 - outbound mail must be stubbed
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, wired to the test database.

    Sets up:
    - Test database connection via dependency override
    - Test settings and a low-cost password hasher
    - httpx.AsyncClient with ASGI transport

    Args:
        db_engine: Test database engine from db_engine fixture.
        sent_mail: Patched email sender.

    Yields:
        AsyncClient for making API requests.
    """
    from gatekeeper.api.deps import get_password_hasher
    from gatekeeper.core.config import get_settings
    from gatekeeper.core.database import get_db
    from gatekeeper.main import app

    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Override get_db to use test database, with the same commit/rollback
    # behavior as the real dependency
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    hasher = fast_hasher()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    app.dependency_overrides[get_password_hasher] = lambda: hasher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

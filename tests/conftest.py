"""
Test infrastructure for the postboard API.

Strategy
--------
- SQLite in-memory via aiosqlite removes the need for a running Postgres
  instance.  StaticPool makes every session share the one connection,
  because an in-memory SQLite database only exists on its connection.
- The app's get_db dependency is overridden so every request uses the
  test session factory.
- Tables are created before each test and dropped after it.
- Redis is replaced by a fresh ``fakeredis`` instance per test, so the
  reset-token flow runs against real SET/GET/DEL/expiry semantics.
- The mailer is replaced by ``RecordingMailer``, which keeps every
  message instead of talking to SMTP.
"""
import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from postboard.database import Base, get_db
from postboard.dependencies import get_mailer, get_redis
from postboard.loaders import Loaders
from postboard.main import app
from postboard.middleware import install_query_counter
from postboard.tokens import TokenStore

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


class RecordingMailer:
    """Stands in for ``postboard.mail.Mailer``; remembers what was sent."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, html: str, subject: str = "Change password") -> None:
        self.sent.append((to, html))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call the services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def loaders(db_session: AsyncSession) -> Loaders:
    return Loaders(db_session)


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def token_store(redis_client) -> TokenStore:
    return TokenStore(redis_client)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest_asyncio.fixture
async def async_client(redis_client, mailer) -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport.

    The lifespan does not run under ASGITransport, so the process-wide
    handles it would create (Redis client, mailer) are supplied through
    dependency overrides instead.
    """
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_mailer] = lambda: mailer
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_redis, None)
    app.dependency_overrides.pop(get_mailer, None)


@pytest.fixture
def register_user(async_client: AsyncClient):
    """Return a coroutine that registers a user and yields ``(user, auth_headers)``."""

    async def register(username: str, password: str = "secret") -> tuple[dict, dict]:
        resp = await async_client.post("/api/v1/users/register", json={
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
        })
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert "errors" not in body, body
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return register

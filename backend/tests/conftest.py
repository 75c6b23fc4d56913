"""
Shared pytest fixtures for pushrelay tests.

Uses SQLite in-memory with StaticPool so all sessions share one connection,
meaning data written by the registry is visible to the HTTP client and to
assertions inside the test.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

import pushrelay.models  # noqa – registers all SQLAlchemy models with Base.metadata
from pushrelay.api.deps import get_transport
from pushrelay.core.database import Base, get_session_factory
from pushrelay.core.vapid import KeyAuthority, generate_key_pair, get_key_authority, sign
from pushrelay.main import app
from pushrelay.schemas.push import SubscriptionDescriptor
from pushrelay.services.subscription_registry import SubscriptionRegistry

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
SUBJECT = "mailto:push@example.com"


# ── Fake push service ─────────────────────────────────────────────────────────

class FakeTransport:
    """Records every send; answers with a per-endpoint status code or exception."""

    def __init__(self, responses: dict | None = None, default: int = 201):
        self.responses = responses or {}
        self.default = default
        self.calls: list[dict] = []

    async def send(self, subscription_info, data, *, signing, ttl, urgency):
        self.calls.append({
            "endpoint": subscription_info["endpoint"],
            "keys": subscription_info["keys"],
            "data": data,
            "claims": signing.claims(),
            "ttl": ttl,
            "urgency": urgency,
        })
        response = self.responses.get(subscription_info["endpoint"], self.default)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def endpoints(self) -> list[str]:
        return [c["endpoint"] for c in self.calls]


def descriptor(endpoint: str, user_id: str | None = None, **keys) -> SubscriptionDescriptor:
    return SubscriptionDescriptor(
        endpoint=endpoint,
        keys={"p256dh": keys.get("p256dh", "BPubKey"), "auth": keys.get("auth", "AuthSecret")},
        user_id=user_id,
    )


# ── Keys ──────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def vapid_keys() -> tuple[str, str]:
    return generate_key_pair()


@pytest.fixture
def signing(vapid_keys):
    public_key, private_key = vapid_keys
    return sign(SUBJECT, public_key, private_key)


@pytest.fixture
def authority(signing) -> KeyAuthority:
    return KeyAuthority(signing)


# ── Database ──────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    """Creates a fresh in-memory SQLite engine per test with a shared connection pool."""
    eng = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def registry(session_factory) -> SubscriptionRegistry:
    return SubscriptionRegistry(session_factory)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


# ── HTTP client fixture ───────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, authority, transport) -> AsyncClient:
    """FastAPI test client wired to the test engine, test keys and the fake push service."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_key_authority] = lambda: authority
    app.dependency_overrides[get_transport] = lambda: transport

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()

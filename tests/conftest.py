"""Pytest configuration and fixtures."""

import json
import uuid
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import Base, get_db, get_session_factory
from app.main import app
from app.models import PushSubscription, User, UserRole
from app.services.settings_store import seed_defaults
from app.services.shop_status import ShopStatusService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Monday
MONDAY_NOON = datetime(2026, 10, 19, 12, 0)


class FixedClock:
    """Settable stand-in for the shop-local clock."""

    def __init__(self, now: datetime = MONDAY_NOON):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeTransport:
    """Records sends; endpoints listed in ``failures`` raise the given error."""

    enabled = True

    def __init__(self, failures: dict | None = None):
        self.failures = failures or {}
        self.sent: list[tuple[str, dict]] = []

    async def send(self, endpoint: str, keys: dict, data: str) -> None:
        self.sent.append((endpoint, json.loads(data)))
        error = self.failures.get(endpoint)
        if error is not None:
            raise error


@pytest_asyncio.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        await seed_defaults(session)
        await session.commit()
    return factory


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a test database session (defaults already seeded)."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def status_service(session_factory, clock):
    return ShopStatusService(session_factory, clock=clock)


@pytest_asyncio.fixture
async def client(session_factory, status_service, transport):
    """Async test client with database and service overrides."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.status_service = status_service
    app.state.push_transport = transport

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    await status_service.stop()
    app.dependency_overrides.clear()


async def make_user(session: AsyncSession, email: str, role: UserRole = UserRole.CUSTOMER) -> tuple[User, str]:
    user = User(id=str(uuid.uuid4()), email=email, name=email.split("@")[0], role=role.value)
    token = user.generate_session_token()
    session.add(user)
    await session.commit()
    return user, token


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await make_user(db_session, "admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def customer_user(db_session):
    return await make_user(db_session, "customer@example.com")


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return {"Authorization": f"Bearer {admin_user[1]}"}


@pytest.fixture
def customer_headers(customer_user) -> dict:
    return {"Authorization": f"Bearer {customer_user[1]}"}


async def add_subscriptions(session: AsyncSession, count: int, user_id: str | None = None) -> list[PushSubscription]:
    rows = [
        PushSubscription(
            id=str(uuid.uuid4()),
            user_id=user_id,
            endpoint=f"https://push.example.com/send/{uuid.uuid4()}",
            p256dh_key=f"p256dh-{i}",
            auth_key=f"auth-{i}",
            is_active=True,
        )
        for i in range(count)
    ]
    session.add_all(rows)
    await session.commit()
    return rows

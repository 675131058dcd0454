"""
Centralized Test Configuration.
"""

import json

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from institute_finance.app.main import app
from institute_finance.app.core.jwt import create_access_token
from institute_finance.app.core.reliability import CircuitBreaker, events_circuit_breaker
import institute_finance.app.core.redis_client as redis_client_module
from institute_finance.app.db.session import get_db, Base
from institute_finance.app.models.enums import HolderRole
from institute_finance.app.models.holder import Holder
from institute_finance.app.services.event_publisher import EventPublisher, get_event_publisher
from institute_finance.app.services.holder_locking import holder_locks

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.published = []
        self.fail_publish = False
        self._closed = False

    async def ping(self):
        return not self._closed

    async def publish(self, channel, message):
        if self.fail_publish or self._closed:
            raise ConnectionError("Redis unavailable")
        self.published.append((channel, message))
        return 1

    def events(self, event_type=None):
        """Decoded events published so far, optionally of one type."""
        decoded = [json.loads(message) for _, message in self.published]
        if event_type is None:
            return decoded
        return [item for item in decoded if item["type"] == event_type]

    async def flushdb(self):
        self.published = []
        self.fail_publish = False

    async def aclose(self):
        self._closed = True


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    holder_locks.clear()
    events_circuit_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def publisher(redis_client_session):
    """Event publisher writing to the in-memory Redis, with its own breaker."""
    return EventPublisher(
        redis=redis_client_session,
        channel="test:finance:events",
        breaker=CircuitBreaker(failure_threshold=3, reset_timeout=30),
        enabled=True,
    )


@pytest.fixture
async def client(publisher):
    """Async client for testing."""
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_event_publisher, None)


@pytest.fixture
def db_session_factory():
    """Session factory for tests that need several independent sessions."""
    return TestingSessionLocal


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def _create_holder(full_name: str, role: HolderRole, is_active: bool = True) -> int:
    async with TestingSessionLocal() as session:
        holder = Holder(full_name=full_name, role=role, is_active=is_active)
        session.add(holder)
        await session.commit()
        return holder.id


@pytest.fixture
async def admin_id():
    return await _create_holder("Asha Admin", HolderRole.ADMIN)


@pytest.fixture
async def partner_id():
    return await _create_holder("Pavan Partner", HolderRole.PARTNER)


@pytest.fixture
async def teacher_id():
    return await _create_holder("Tara Teacher", HolderRole.TEACHER)


@pytest.fixture
async def staff_id():
    return await _create_holder("Sami Staff", HolderRole.STAFF)


@pytest.fixture
async def retired_id():
    return await _create_holder("Rafi Retired", HolderRole.STAFF, is_active=False)


def auth_headers(holder_id: int, role: HolderRole) -> dict:
    token = create_access_token(data={"sub": f"holder-{holder_id}", "user_id": holder_id, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Factory: bearer headers for any holder id and role."""
    return auth_headers


@pytest.fixture
def admin_headers(admin_id):
    return auth_headers(admin_id, HolderRole.ADMIN)


@pytest.fixture
def teacher_headers(teacher_id):
    return auth_headers(teacher_id, HolderRole.TEACHER)

"""
Centralized Test Configuration.
"""

import pytest
from datetime import date, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from campus_parking.app.main import app
from campus_parking.app.db.session import get_db, Base
from campus_parking.app.core.jwt import issue_identity_token
from campus_parking.app.core.redis_client import get_redis
from campus_parking.app.core.reliability import CircuitBreaker
from campus_parking.app.models.spot import Spot
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.payments import InMemoryPaymentGateway, PaymentService
import campus_parking.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the health check
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
def gateway():
    """In-memory payment collaborator."""
    return InMemoryPaymentGateway()

@pytest.fixture
def parking_engine(gateway, redis_client_session):
    """Fresh engine per test, with instant retries, wired into the app."""
    payments = PaymentService(
        gateway,
        breaker=CircuitBreaker(failure_threshold=100, reset_timeout=60),
        attempts=3,
        base_delay=0,
        max_delay=0,
        timeout=2,
    )
    parking = Engine(gateway=gateway, redis=redis_client_session, payments=payments)
    app.dependency_overrides[get_engine] = lambda: parking
    yield parking
    app.dependency_overrides.pop(get_engine, None)

@pytest.fixture
async def client(parking_engine):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def auth_headers():
    """Builds a bearer header for a token signed like the identity service signs them."""
    def build(user_id: int, role: str = "USER") -> dict:
        token = issue_identity_token(user_id=user_id, username=f"user{user_id}", role=role)
        return {"Authorization": f"Bearer {token}"}
    return build

@pytest.fixture
def owner_id():
    return 100

@pytest.fixture
def renter_id():
    return 200

@pytest.fixture
def admin_id():
    return 900

@pytest.fixture
def admin_headers(auth_headers, admin_id):
    return auth_headers(admin_id, role="ADMIN")


@pytest.fixture
def rental_day():
    """A rental date comfortably outside the full-refund window."""
    return date.today() + timedelta(days=7)


@pytest.fixture
async def lot_spots(db_session, owner_id):
    """Lot A: the 200 m spot owned by `owner_id` plus candidates at 150 m and 300 m."""
    spots = [
        Spot(code="A-200", lot="A", distance_to_campus_m=200, owner_id=owner_id),
        Spot(code="A-150", lot="A", distance_to_campus_m=150, owner_id=owner_id + 1),
        Spot(code="A-300", lot="A", distance_to_campus_m=300, owner_id=owner_id + 2),
    ]
    db_session.add_all(spots)
    await db_session.commit()
    return {s.code: s for s in spots}

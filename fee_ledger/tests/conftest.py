"""
Centralized Test Configuration.

Each test gets a fresh in-memory SQLite database and an in-process redis
stand-in whose locks behave like redis-py's asyncio Lock.
"""

import asyncio
import pytest
from datetime import date, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from fee_ledger.app.main import app
from fee_ledger.app.db.session import get_db, Base, enable_sqlite_foreign_keys
from fee_ledger.app.core.jwt import create_user_token
from fee_ledger.app.domain.billing.obligation_registry import FeeObligationRegistry
from fee_ledger.app.models.course import Course, CourseEnrollment
from fee_ledger.app.models.enums import UserRole
from fee_ledger.app.models.user import User
import fee_ledger.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FEE_AMOUNT = 10000


# Mock Redis for reliability in CI/CD
class MockLock:
    """Mirrors redis.asyncio.lock.Lock: acquire() returns False on wait timeout."""

    def __init__(self, mutex: asyncio.Lock, blocking_timeout=None):
        self._mutex = mutex
        self._blocking_timeout = blocking_timeout
        self.acquired = False

    async def acquire(self):
        try:
            await asyncio.wait_for(self._mutex.acquire(), timeout=self._blocking_timeout)
        except asyncio.TimeoutError:
            return False
        self.acquired = True
        return True

    async def release(self):
        self.acquired = False
        self._mutex.release()


class MockRedis:
    def __init__(self):
        self.store = {}
        self.locks = {}
        self.lock_requests = []
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.lock_requests.append(name)
        mutex = self.locks.setdefault(name, asyncio.Lock())
        return MockLock(mutex, blocking_timeout=blocking_timeout)

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture(autouse=True)
def apply_overrides(session_factory, mock_redis, monkeypatch):
    """Point the app at the test database and the mock redis for one test."""
    monkeypatch.setattr(redis_client_module, "redis_client", mock_redis)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db, username: str, role: UserRole) -> User:
    user = User(email=f"{username}@test.com", username=username, role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin_user(db_session):
    return await _make_user(db_session, "admin", UserRole.ADMIN)


@pytest.fixture
async def student(db_session):
    return await _make_user(db_session, "student", UserRole.STUDENT)


@pytest.fixture
async def other_student(db_session):
    return await _make_user(db_session, "student2", UserRole.STUDENT)


@pytest.fixture
async def course(db_session, student, other_student):
    """A course both students are enrolled in."""
    course = Course(title="Intro to Accounting")
    db_session.add(course)
    await db_session.flush()

    db_session.add_all([
        CourseEnrollment(course_id=course.id, user_id=student.id),
        CourseEnrollment(course_id=course.id, user_id=other_student.id),
    ])
    await db_session.commit()
    return course


@pytest.fixture
async def fee(db_session, admin_user, student, course):
    """A 10000 obligation for `student`, due in 30 days."""
    return await FeeObligationRegistry.create_obligation(
        db_session,
        user_id=student.id,
        course_id=course.id,
        amount=FEE_AMOUNT,
        due_date=date.today() + timedelta(days=30),
        created_by=admin_user.id,
    )


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def student_headers(student):
    return _headers(student)


@pytest.fixture
def other_student_headers(other_student):
    return _headers(other_student)

import sys
import os

# Ensure src directory is in Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

# Settings are read once at import time
os.environ["SCREENSHOT_ENABLED"] = "false"
os.environ["INTERNAL_API_TOKEN"] = "test-internal-token"
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from uptimer.auth import hash_password
from uptimer.database import Base, get_db, set_session_factory
from uptimer.main import app
from uptimer.models.cron_job import CronJob
from uptimer.models.monitor import Monitor
from uptimer.models.user import User

INTERNAL_TOKEN = "test-internal-token"

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

# Background side effects open their own sessions
set_session_factory(test_session_factory)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db():
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


class RecordingDispatcher:
    """Collects scheduled side-effect tasks instead of running them."""

    def __init__(self):
        self.tasks = []

    def schedule(self, task):
        self.tasks.append(task)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def db():
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db: AsyncSession):
    async def _make_user(email: str = "owner@example.com", name: str = "Owner") -> User:
        user = User(email=email, name=name, password_hash=hash_password("password123"))
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def make_monitor(db: AsyncSession):
    async def _make_monitor(user: User, name: str = "API", url: str = "https://api.example.com") -> Monitor:
        monitor = Monitor(user_id=user.id, name=name, url=url)
        db.add(monitor)
        await db.commit()
        await db.refresh(monitor)
        return monitor

    return _make_monitor


@pytest_asyncio.fixture
async def make_cron_job(db: AsyncSession):
    async def _make_cron_job(user: User, name: str = "Nightly backup") -> CronJob:
        job = CronJob(
            user_id=user.id,
            name=name,
            url="https://jobs.example.com/backup",
            cron_expr="0 3 * * *",
        )
        db.add(job)
        await db.commit()
        await db.refresh(job)
        return job

    return _make_cron_job


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient):
    """Create a user and return an authenticated client."""
    signup_data = {
        "name": "Test User",
        "email": "test@example.com",
        "password": "testpassword123",
    }
    response = await client.post("/auth/signup", json=signup_data)
    assert response.status_code == 201

    # Extract cookies from signup response
    cookies = response.cookies
    client.cookies.update(cookies)
    return client


@pytest_asyncio.fixture
async def other_client():
    """A second, unrelated account on its own client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        response = await c.post("/auth/signup", json={
            "name": "Other User",
            "email": "other@example.com",
            "password": "otherpassword123",
        })
        assert response.status_code == 201
        c.cookies.update(response.cookies)
        yield c


@pytest_asyncio.fixture
async def internal_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {INTERNAL_TOKEN}"},
    ) as c:
        yield c


@pytest.fixture
def session_factory():
    """Factory for extra sessions, e.g. to act as a second concurrent caller."""
    return test_session_factory

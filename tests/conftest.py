# tests/conftest.py
import os
import tempfile

# Settings are read at import time, so the environment goes first
_DB_DIR = tempfile.mkdtemp(prefix="happypulse-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/events.db"
os.environ["INDEX_DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/index.db"
os.environ["REDIS_URL"] = ""
os.environ["GROQ_API_KEY"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from happypulse.db.session import (  # noqa: E402
    AsyncSessionLocal, Base, IndexBase, IndexSessionLocal, engine, index_engine,
)
from happypulse.main import app  # noqa: E402
from happypulse.models.events import CheckIn  # noqa: E402
from happypulse.services.directory import create_user  # noqa: E402
from happypulse.services.notifications import NotificationDispatcher  # noqa: E402
from happypulse.tasks.queue import PostCommitQueue, TaskContext  # noqa: E402
from tests.helpers import at  # noqa: E402


@pytest.fixture(autouse=True)
async def schema():
    """Fresh tables for every test, in both stores."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with index_engine.begin() as conn:
        await conn.run_sync(IndexBase.metadata.drop_all)
        await conn.run_sync(IndexBase.metadata.create_all)
    yield
    await engine.dispose()
    await index_engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def index_db():
    async with IndexSessionLocal() as session:
        yield session


@pytest.fixture
def notifier():
    # In-app only; no outbound providers
    return NotificationDispatcher(providers=[])


@pytest.fixture
def queue(notifier):
    """A post-commit queue with no workers; tests call drain() to run jobs."""
    return PostCommitQueue(
        TaskContext(AsyncSessionLocal, IndexSessionLocal, notifier),
        max_attempts=3,
        backoff_seconds=0,
        max_depth=100,
    )


@pytest.fixture
async def client(queue):
    app.state.task_queue = queue
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(department="Engineering", role="employee", **profile):
        counter["n"] += 1
        n = counter["n"]
        user = await create_user(
            db,
            email=profile.pop("email", f"user{n}@example.com"),
            name=profile.pop("name", f"User {n}"),
            employee_id=profile.pop("employee_id", f"EMP{n:04d}"),
            department=department,
            role=role,
            **profile,
        )
        await db.commit()
        return user
    return _make


@pytest.fixture
def add_checkin(db):
    """Insert a historical check-in directly, bypassing the processor."""
    async def _add(user, day: date, mood: int, feedback=None):
        row = CheckIn(
            user_id=user.id,
            day=day,
            mood=mood,
            feedback=feedback,
            source="web",
            happy_coins_earned=50,
            streak_at_check_in=1,
            created_at=at(day),
        )
        db.add(row)
        await db.commit()
        return row
    return _add

"""
Pytest fixtures for LearnPath tests.

Every test gets its own SQLite file so progression state never leaks
between tests. The question service is left unconfigured, so questions
come from the local bank and answers are graded by string equality.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

# Configure the app before anything imports learnpath.config / learnpath.database
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
APP_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{APP_DB_PATH}"
os.environ["OPENAI_API_KEY"] = ""
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from learnpath.ai.question_service import QuestionService
from learnpath.config import Settings, get_settings
from learnpath.engines.progression.progress_tracker import ProgressTracker
from learnpath.kernel.models import Base

get_settings.cache_clear()


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=os.environ["DATABASE_URL"],
        openai_api_key="",
        notification_webhook_url=None,
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a test database engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'learnpath_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def question_service(settings: Settings) -> QuestionService:
    service = QuestionService(settings)
    assert not service.enabled
    return service


@pytest.fixture
def tracker(db_session, question_service, settings, clock) -> ProgressTracker:
    return ProgressTracker(db_session, question_service=question_service, settings=settings, clock=clock)


@pytest_asyncio.fixture
async def student(tracker: ProgressTracker):
    """A registered student with one analyzed Math session."""
    registered = await tracker.register_student("Test Student", student_id=uuid.uuid4())
    await tracker.record_session_analysis(
        registered.id,
        "Math",
        ["fractions", "decimals"],
        occurred_at=tracker.clock() - timedelta(days=1),
    )
    return registered


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp DB file after test run."""
    for suffix in ("", "-wal", "-shm"):
        path = APP_DB_PATH + suffix
        if os.path.exists(path):
            os.unlink(path)

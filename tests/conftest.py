# tests/conftest.py
from __future__ import annotations

import os

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from jobs.notifier import JobCompletionNotifier  # noqa: E402
from jobs.scheduler import MediaJobScheduler  # noqa: E402
from models import Base  # noqa: E402
from tests.helpers import FakeGenerator  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def notifier() -> JobCompletionNotifier:
    return JobCompletionNotifier()


@pytest.fixture
def make_scheduler(session_factory, generator, notifier):
    def _make(**kwargs) -> MediaJobScheduler:
        kwargs.setdefault("generator", generator)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("rate_limit_delay", 0)
        kwargs.setdefault("tick_on_enqueue", False)
        gen = kwargs.pop("generator")
        return MediaJobScheduler(session_factory, gen, **kwargs)

    return _make

import os

# must be set before geoquest.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./geoquest-test.db")
os.environ.setdefault("REALTIME_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CRON_SECRET", "test-cron")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from geoquest.db import Base, get_session
import geoquest.models.tour  # register tables
import geoquest.models.game_session
import geoquest.models.submission
import geoquest.models.score
from geoquest.main import app
from geoquest.services.oracle import OracleVerdict, get_oracle
from geoquest.services.realtime import MemoryChannel, get_channel


class FakeOracle:
    """Deterministic stand-in for the scoring gateway."""

    def __init__(self, verdict: dict | None = None):
        self.verdict = verdict or {
            "score": 80,
            "dimensions": {"connection": 10, "meaning": 10, "joy": 10, "growth": 10},
            "feedback": "Mooi gedaan!",
            "reasoning": "clear answer",
        }
        self.calls = []
        self.error: Exception | None = None
        self.before_answer = None  # optional async hook run mid-call

    async def evaluate(self, req):
        self.calls.append(req)
        if self.before_answer is not None:
            await self.before_answer()
        if self.error is not None:
            raise self.error
        return OracleVerdict.model_validate(self.verdict)


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'geoquest.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(maker):
    async with maker() as s:
        yield s


@pytest.fixture
def channel():
    return MemoryChannel()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest_asyncio.fixture
async def client(maker, channel, oracle):
    async def _session():
        async with maker() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_channel] = lambda: channel
    app.dependency_overrides[get_oracle] = lambda: oracle
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

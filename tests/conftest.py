"""Shared fixtures: in-memory SQLite database, seeded companies, and fakes."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rivalwatch.models import Base, Company, CompanyPlatform, Platform
from rivalwatch.providers.base import SnapshotStatus

LINKEDIN_URL = "https://www.linkedin.com/company/globex"


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def companies(session_factory):
    """An initiating company (Acme) tracking a competitor (Globex) on LinkedIn."""
    async with session_factory() as session:
        acme = Company(name="Acme")
        globex = Company(name="Globex")
        linkedin = Platform(name="LinkedIn")
        session.add_all([acme, globex, linkedin])
        await session.flush()
        session.add(CompanyPlatform(company_id=globex.id, platform_id=linkedin.id, profile_url=LINKEDIN_URL))
        await session.commit()
        return SimpleNamespace(company_id=acme.id, target_id=globex.id, platform_id=linkedin.id, url=LINKEDIN_URL)


def make_post(index: int, posted_at: datetime | None = None, **overrides: Any) -> dict[str, Any]:
    posted_at = posted_at or datetime(2026, 1, 1, tzinfo=UTC) + timedelta(days=index)
    post = {
        "id": f"70000000000{index:04d}",
        "url": f"https://www.linkedin.com/posts/globex_activity-70000000000{index:04d}",
        "post_text": f"Post number {index}",
        "date_posted": posted_at.isoformat().replace("+00:00", "Z"),
        "num_likes": 10 + index,
        "num_comments": index,
    }
    post.update(overrides)
    return post


class FakeProvider:
    """Scripted ScrapeProvider.

    Each ``*_responses`` list is consumed in order; an Exception entry is raised
    instead of returned. Call start times are recorded on the running loop clock.
    """

    def __init__(self):
        self.company_responses: list[Any] = []
        self.profile_responses: list[Any] = []
        self.posts_responses: list[Any] = []
        self.status_responses: list[Any] = []
        self.calls: list[tuple[str, str]] = []
        self.call_times: list[float] = []
        self.call_duration = 0.0

    async def _respond(self, kind: str, url: str, responses: list[Any]) -> Any:
        self.calls.append((kind, url))
        self.call_times.append(asyncio.get_running_loop().time())
        if self.call_duration:
            await asyncio.sleep(self.call_duration)
        response = responses.pop(0) if responses else []
        if isinstance(response, Exception):
            raise response
        return response

    async def scrape_company(self, url):
        return await self._respond("company", url, self.company_responses)

    async def scrape_profile(self, url):
        return await self._respond("profile", url, self.profile_responses)

    async def scrape_posts(self, url, discover_by, date_range=None):
        return await self._respond("posts", url, self.posts_responses)

    async def check_snapshot_status(self, snapshot_id):
        self.calls.append(("status", snapshot_id))
        response = self.status_responses.pop(0) if self.status_responses else SnapshotStatus(status="processing")
        if isinstance(response, Exception):
            raise response
        return response


class RecordingEvents:
    def __init__(self):
        self.emitted: list[tuple[str, str, dict]] = []

    async def emit(self, company_id, event, payload):
        self.emitted.append((company_id, event, payload))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.emitted]

    def of(self, event: str) -> list[dict]:
        return [payload for _, name, payload in self.emitted if name == event]


class RecordingCache:
    def __init__(self):
        self.invalidated: list[tuple[str, str]] = []
        self.lists: list[str] = []

    async def invalidate_competitor(self, company_id, target_id):
        self.invalidated.append((company_id, target_id))

    async def invalidate_competitor_list(self, company_id):
        self.lists.append(company_id)


@dataclass
class EnqueuedJob:
    function: str
    args: tuple
    job_id: str | None
    queue_name: str | None
    defer_by: Any


@dataclass
class FakeArqRedis:
    """Records enqueue_job calls; a repeated ``_job_id`` returns None like arq."""

    jobs: list[EnqueuedJob] = field(default_factory=list)
    _seen_ids: set[str] = field(default_factory=set)

    async def enqueue_job(self, function, *args, _job_id=None, _queue_name=None, _defer_by=None, **kwargs):
        if _job_id is not None:
            if _job_id in self._seen_ids:
                return None
            self._seen_ids.add(_job_id)
        job_id = _job_id or f"arq-{len(self.jobs) + 1}"
        self.jobs.append(EnqueuedJob(function, args, job_id, _queue_name, _defer_by))
        return SimpleNamespace(job_id=job_id)

    def named(self, function: str) -> list[EnqueuedJob]:
        return [job for job in self.jobs if job.function == function]


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture
def cache():
    return RecordingCache()


@pytest.fixture
def arq_redis():
    return FakeArqRedis()

"""End-to-end tests for the scrape orchestrator against an in-memory database."""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from conftest import make_post
from rivalwatch.models.pending_snapshot import PendingSnapshot
from rivalwatch.models.post import Post
from rivalwatch.models.scrape_job import ScrapeJobStatus, ScrapeType
from rivalwatch.providers.brightdata import ProviderError
from rivalwatch.services.async_scraper import ScrapeOrchestrator
from rivalwatch.services.provider_queue import ProviderCallQueue
from rivalwatch.services.scrape_job_service import create_scrape_job, get_scrape_job, mark_job_failed


@pytest_asyncio.fixture
async def orchestrator(session_factory, provider, events, cache):
    queue = ProviderCallQueue(provider, min_interval=0)
    yield ScrapeOrchestrator(session_factory, queue, events, cache, retry_delay=0)
    await queue.close()


async def _job(session_factory, companies):
    async with session_factory() as db:
        return await create_scrape_job(
            db, companies.company_id, companies.target_id, companies.url, "LinkedIn", ScrapeType.POSTS
        )


async def _reload(session_factory, job_id):
    async with session_factory() as db:
        return await get_scrape_job(db, job_id)


async def _post_count(session_factory, company_id):
    async with session_factory() as db:
        return await db.scalar(select(func.count(Post.id)).where(Post.company_id == company_id))


@pytest.mark.asyncio
async def test_immediate_results_complete_the_job(orchestrator, session_factory, companies, provider, events, cache):
    provider.posts_responses = [[make_post(i) for i in range(5)]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    done = await _reload(session_factory, job.id)
    assert done.status == ScrapeJobStatus.COMPLETED
    assert done.posts_scraped == 5
    assert done.progress == 100
    assert await _post_count(session_factory, companies.target_id) == 5

    assert events.names()[0] == "scrape:started"
    assert events.of("scrape:started")[0]["targetName"] == "Globex"
    assert events.of("scrape:completed") == [{"jobId": job.id, "targetId": companies.target_id, "postsScraped": 5}]
    assert [p["progress"] for p in events.of("scrape:progress")] == [30, 60, 90]
    assert cache.invalidated == [(companies.company_id, companies.target_id)]
    assert all(company == companies.company_id for company, _, _ in events.emitted)


@pytest.mark.asyncio
async def test_empty_results_complete_with_zero(orchestrator, session_factory, companies, provider):
    provider.posts_responses = [[]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    done = await _reload(session_factory, job.id)
    assert done.status == ScrapeJobStatus.COMPLETED
    assert done.posts_scraped == 0


@pytest.mark.asyncio
async def test_ticket_hands_off_to_pending_snapshot(orchestrator, session_factory, companies, provider, events):
    provider.posts_responses = [[{"snapshot_id": "s_abc"}]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    waiting = await _reload(session_factory, job.id)
    assert waiting.status == ScrapeJobStatus.IN_PROGRESS
    assert waiting.progress == 40
    async with session_factory() as db:
        pending = (await db.execute(select(PendingSnapshot))).scalars().all()
    assert [(p.snapshot_id, p.scrape_job_id, p.attempts) for p in pending] == [("s_abc", job.id, 0)]
    assert "scrape:completed" not in events.names()


@pytest.mark.asyncio
async def test_two_failures_fail_the_job_after_exactly_two_attempts(
    orchestrator, session_factory, companies, provider, events
):
    provider.posts_responses = [ProviderError("timeout"), ProviderError("still down"), [make_post(1)]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    failed = await _reload(session_factory, job.id)
    assert failed.status == ScrapeJobStatus.FAILED
    assert failed.error_message == "still down"
    assert [kind for kind, _ in provider.calls] == ["posts", "posts"]
    assert await _post_count(session_factory, companies.target_id) == 0
    assert events.of("scrape:failed") == [
        {"jobId": job.id, "targetId": companies.target_id, "error": "still down"}
    ]
    assert any(p["message"] == "Retrying... (attempt 2/2)" for p in events.of("scrape:progress"))


@pytest.mark.asyncio
async def test_second_attempt_can_succeed(orchestrator, session_factory, companies, provider):
    provider.posts_responses = [ProviderError("blip"), [make_post(1), make_post(2)]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    done = await _reload(session_factory, job.id)
    assert done.status == ScrapeJobStatus.COMPLETED
    assert done.posts_scraped == 2


@pytest.mark.asyncio
async def test_only_twenty_newest_posts_are_stored(orchestrator, session_factory, companies, provider):
    provider.posts_responses = [[make_post(i) for i in range(35)]]
    job = await _job(session_factory, companies)

    await orchestrator.run(job.id)

    async with session_factory() as db:
        texts = (await db.execute(select(Post.caption_text))).scalars().all()
    assert sorted(texts) == sorted(f"Post number {i}" for i in range(15, 35))
    assert (await _reload(session_factory, job.id)).posts_scraped == 20


@pytest.mark.asyncio
async def test_job_already_failed_is_not_run(orchestrator, session_factory, companies, provider, events):
    job = await _job(session_factory, companies)
    async with session_factory() as db:
        await mark_job_failed(db, job.id, "Job timed out (server restart recovery)")

    await orchestrator.run(job.id)

    assert provider.calls == []
    assert events.emitted == []


@pytest.mark.asyncio
async def test_missing_job_is_ignored(orchestrator, provider):
    await orchestrator.run("missing-job")
    assert provider.calls == []


@pytest.mark.asyncio
async def test_ticket_for_job_failed_mid_call_is_not_stored(
    orchestrator, session_factory, companies, provider, events
):
    job = await _job(session_factory, companies)

    async def recovered_then_ticket(url, discover_by, date_range=None):
        async with session_factory() as db:
            await mark_job_failed(db, job.id, "Job timed out (server restart recovery)")
        return [{"snapshot_id": "s_late"}]

    provider.scrape_posts = recovered_then_ticket

    await orchestrator.run(job.id)

    failed = await _reload(session_factory, job.id)
    assert failed.status == ScrapeJobStatus.FAILED
    assert failed.error_message == "Job timed out (server restart recovery)"
    async with session_factory() as db:
        assert (await db.execute(select(PendingSnapshot))).first() is None
    assert all(p["progress"] != 40 for p in events.of("scrape:progress"))
    assert "scrape:failed" not in events.names()

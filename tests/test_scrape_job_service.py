"""Tests for ScrapeJob creation, lookups and forward-only transitions."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from rivalwatch.models.scrape_job import ScrapeJob, ScrapeJobStatus, ScrapeType
from rivalwatch.services.scrape_job_service import (
    JobNotFoundError,
    cleanup_old_jobs,
    create_scrape_job,
    find_active_job_for_target,
    find_stuck_jobs,
    get_scrape_job,
    list_scrape_jobs,
    mark_job_completed,
    mark_job_failed,
    mark_job_started,
    update_job_progress,
)
from rivalwatch.utils import now_utc


async def _new_job(db, companies):
    return await create_scrape_job(
        db, companies.company_id, companies.target_id, companies.url, "LinkedIn", ScrapeType.POSTS
    )


async def _age(db, job_id, **fields):
    await db.execute(update(ScrapeJob).where(ScrapeJob.id == job_id).values(**fields))
    await db.commit()


@pytest.mark.asyncio
async def test_create_job_starts_pending(db, companies):
    job = await _new_job(db, companies)

    assert job.status == ScrapeJobStatus.PENDING
    assert job.progress == 0
    assert job.posts_scraped == 0
    assert job.error_message is None


@pytest.mark.asyncio
async def test_create_job_rejects_missing_fields(db, companies):
    with pytest.raises(ValueError, match="target_url"):
        await create_scrape_job(db, companies.company_id, companies.target_id, "", "LinkedIn", "posts")


@pytest.mark.asyncio
async def test_lifecycle_to_completed(db, companies):
    job = await _new_job(db, companies)

    started = await mark_job_started(db, job.id)
    assert started.status == ScrapeJobStatus.IN_PROGRESS
    assert started.progress == 10
    assert started.started_at is not None

    await update_job_progress(db, job.id, 60)
    completed = await mark_job_completed(db, job.id, 5)

    assert completed.status == ScrapeJobStatus.COMPLETED
    assert completed.progress == 100
    assert completed.posts_scraped == 5
    assert completed.completed_at is not None


@pytest.mark.asyncio
async def test_terminal_job_is_never_updated_again(db, companies):
    job = await _new_job(db, companies)
    await mark_job_failed(db, job.id, "provider down")

    assert await mark_job_completed(db, job.id, 12) is None
    assert await mark_job_started(db, job.id) is None
    assert await update_job_progress(db, job.id, 90) is None

    reloaded = await get_scrape_job(db, job.id)
    assert reloaded.status == ScrapeJobStatus.FAILED
    assert reloaded.error_message == "provider down"
    assert reloaded.posts_scraped == 0


@pytest.mark.asyncio
async def test_progress_update_cannot_change_status(db, companies):
    job = await _new_job(db, companies)

    updated = await update_job_progress(db, job.id, 150, status=ScrapeJobStatus.COMPLETED)

    assert updated.status == ScrapeJobStatus.PENDING
    assert updated.progress == 100


@pytest.mark.asyncio
async def test_unknown_job_raises(db):
    with pytest.raises(JobNotFoundError):
        await mark_job_failed(db, "does-not-exist", "nope")


@pytest.mark.asyncio
async def test_find_active_job_ignores_terminal_jobs(db, companies):
    done = await _new_job(db, companies)
    await mark_job_completed(db, done.id, 1)
    assert await find_active_job_for_target(db, companies.company_id, companies.target_id) is None

    active = await _new_job(db, companies)
    await mark_job_started(db, active.id)
    found = await find_active_job_for_target(db, companies.company_id, companies.target_id)
    assert found.id == active.id


@pytest.mark.asyncio
async def test_list_jobs_newest_first_with_status_filter(db, companies):
    older = await _new_job(db, companies)
    await _age(db, older.id, created_at=now_utc() - timedelta(hours=1))
    await mark_job_failed(db, older.id, "x")
    newer = await _new_job(db, companies)

    assert [j.id for j in await list_scrape_jobs(db, companies.company_id)] == [newer.id, older.id]
    failed = await list_scrape_jobs(db, companies.company_id, status=ScrapeJobStatus.FAILED)
    assert [j.id for j in failed] == [older.id]


@pytest.mark.asyncio
async def test_find_stuck_jobs_uses_created_at(db, companies):
    old = await _new_job(db, companies)
    await mark_job_started(db, old.id)
    await _age(db, old.id, created_at=now_utc() - timedelta(minutes=20))
    await _new_job(db, companies)

    stuck = await find_stuck_jobs(db, timedelta(minutes=10))

    assert [j.id for j in stuck] == [old.id]


@pytest.mark.asyncio
async def test_cleanup_deletes_only_old_terminal_jobs(db, companies):
    old_done = await _new_job(db, companies)
    await mark_job_completed(db, old_done.id, 3)
    await _age(db, old_done.id, completed_at=now_utc() - timedelta(days=8))
    recent_done = await _new_job(db, companies)
    await mark_job_failed(db, recent_done.id, "x")
    active = await _new_job(db, companies)

    deleted = await cleanup_old_jobs(db, older_than_days=7)

    assert deleted == 1
    assert await get_scrape_job(db, old_done.id) is None
    assert await get_scrape_job(db, recent_done.id) is not None
    assert await get_scrape_job(db, active.id) is not None


@pytest.mark.asyncio
async def test_cleanup_right_after_completion_in_same_session(db, companies):
    job = await _new_job(db, companies)
    await mark_job_completed(db, job.id, 1)

    assert await cleanup_old_jobs(db, older_than_days=7) == 0
    assert await get_scrape_job(db, job.id) is not None

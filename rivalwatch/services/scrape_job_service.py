"""ScrapeJob CRUD and status transitions.

The ScrapeJob table is the source of truth for outstanding scraping work.
Transitions only move forward: a job that reached ``completed`` or ``failed``
is never touched again by the ``mark_*`` helpers, which return None instead.
A fresh job must be created to retry.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rivalwatch.constants import JOB_RETENTION_DAYS, SCRAPE_JOBS_PER_PAGE
from rivalwatch.models.scrape_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ScrapeJob,
    ScrapeJobStatus,
    ScrapeType,
)
from rivalwatch.utils import now_utc

logger = logging.getLogger(__name__)


class JobNotFoundError(Exception):
    """Raised when updating a ScrapeJob id that does not exist."""


async def create_scrape_job(
    db: AsyncSession,
    company_id: str,
    target_id: str,
    target_url: str,
    platform: str,
    scrape_type: ScrapeType | str,
) -> ScrapeJob:
    """Create a ``pending`` job with progress 0."""
    missing = [
        name
        for name, value in (
            ("company_id", company_id),
            ("target_id", target_id),
            ("target_url", target_url),
            ("platform", platform),
            ("scrape_type", scrape_type),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"Cannot create scrape job, missing: {', '.join(missing)}")

    job = ScrapeJob(
        company_id=company_id,
        target_id=target_id,
        target_url=target_url,
        platform=platform,
        scrape_type=ScrapeType(scrape_type),
        status=ScrapeJobStatus.PENDING,
        progress=0,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)

    logger.info("Created scrape job %s for target %s", job.id, target_id)
    return job


async def get_scrape_job(db: AsyncSession, job_id: str) -> ScrapeJob | None:
    result = await db.execute(
        select(ScrapeJob)
        .options(selectinload(ScrapeJob.target_company))
        .where(ScrapeJob.id == job_id)
    )
    return result.scalar_one_or_none()


async def list_scrape_jobs(
    db: AsyncSession,
    company_id: str,
    status: ScrapeJobStatus | None = None,
    limit: int = SCRAPE_JOBS_PER_PAGE,
) -> list[ScrapeJob]:
    """Most recent jobs first for the initiating company."""
    stmt = (
        select(ScrapeJob)
        .options(selectinload(ScrapeJob.target_company))
        .where(ScrapeJob.company_id == company_id)
        .order_by(ScrapeJob.created_at.desc())
        .limit(limit)
    )
    if status is not None:
        stmt = stmt.where(ScrapeJob.status == status)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def find_active_job_for_target(
    db: AsyncSession, company_id: str, target_id: str
) -> ScrapeJob | None:
    """Return a pending/in-progress job for the pair, used to avoid duplicate work."""
    result = await db.execute(
        select(ScrapeJob)
        .where(
            ScrapeJob.company_id == company_id,
            ScrapeJob.target_id == target_id,
            ScrapeJob.status.in_(ACTIVE_STATUSES),
        )
        .order_by(ScrapeJob.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _transition(db: AsyncSession, job_id: str, values: dict[str, Any]) -> ScrapeJob | None:
    """Apply ``values`` only while the job is still active.

    Returns the refreshed job, or None when the job had already reached a
    terminal state. Raises JobNotFoundError for unknown ids.
    """
    result = await db.execute(
        update(ScrapeJob)
        .where(ScrapeJob.id == job_id, ScrapeJob.status.in_(ACTIVE_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    job = await db.get(ScrapeJob, job_id, populate_existing=True)
    if job is None:
        raise JobNotFoundError(f"Scrape job {job_id} not found")
    if result.rowcount == 0:
        logger.warning(
            "Ignoring update %s for scrape job %s: already %s", values, job_id, job.status
        )
        return None

    logger.debug("Updated scrape job %s: %s", job_id, values)
    return job


async def mark_job_started(db: AsyncSession, job_id: str) -> ScrapeJob | None:
    return await _transition(
        db,
        job_id,
        {"status": ScrapeJobStatus.IN_PROGRESS, "progress": 10, "started_at": now_utc()},
    )


async def update_job_progress(db: AsyncSession, job_id: str, progress: int, **fields: Any) -> ScrapeJob | None:
    """Partial update of an active job; never changes its status."""
    fields.pop("status", None)
    return await _transition(db, job_id, {"progress": max(0, min(progress, 100)), **fields})


async def mark_job_completed(db: AsyncSession, job_id: str, posts_scraped: int) -> ScrapeJob | None:
    job = await _transition(
        db,
        job_id,
        {
            "status": ScrapeJobStatus.COMPLETED,
            "progress": 100,
            "posts_scraped": posts_scraped,
            "completed_at": now_utc(),
        },
    )
    if job:
        logger.info("Scrape job %s completed: %d posts", job_id, posts_scraped)
    return job


async def mark_job_failed(db: AsyncSession, job_id: str, error_message: str) -> ScrapeJob | None:
    job = await _transition(
        db,
        job_id,
        {
            "status": ScrapeJobStatus.FAILED,
            "error_message": error_message,
            "completed_at": now_utc(),
        },
    )
    if job:
        logger.info("Scrape job %s failed: %s", job_id, error_message)
    return job


async def find_stuck_jobs(db: AsyncSession, older_than: timedelta) -> list[ScrapeJob]:
    """Active jobs created before ``now - older_than``."""
    cutoff = now_utc() - older_than
    result = await db.execute(
        select(ScrapeJob)
        .options(selectinload(ScrapeJob.target_company))
        .where(ScrapeJob.status.in_(ACTIVE_STATUSES), ScrapeJob.created_at < cutoff)
        .order_by(ScrapeJob.created_at)
    )
    return list(result.scalars().all())


async def cleanup_old_jobs(db: AsyncSession, older_than_days: int = JOB_RETENTION_DAYS) -> int:
    """Delete terminal jobs that finished more than ``older_than_days`` ago."""
    cutoff = now_utc() - timedelta(days=older_than_days)
    result = await db.execute(
        delete(ScrapeJob)
        .where(
            ScrapeJob.status.in_(TERMINAL_STATUSES),
            ScrapeJob.completed_at < cutoff,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Cleaned up %d old scrape jobs", result.rowcount)
    return result.rowcount

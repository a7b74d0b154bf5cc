"""Enqueue side of the scrape queue: the only way work enters the system.

Request handlers call these helpers and return immediately; the arq worker
(``rivalwatch.worker``) does the actual scraping. Intent is always recorded
in the database (ScrapeJob row) before the arq job is enqueued.
"""

import logging
from datetime import timedelta
from typing import Any

from arq import ArqRedis
from arq.constants import in_progress_key_prefix
from arq.jobs import Job
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rivalwatch.config import get_settings
from rivalwatch.constants import ARQ_QUEUE_NAME, RETRY_SNAPSHOT_DELAY
from rivalwatch.models.company import CompanyPlatform, Platform
from rivalwatch.models.scrape_job import ScrapeJob, ScrapeType
from rivalwatch.services.scrape_job_service import create_scrape_job, find_active_job_for_target
from rivalwatch.utils import now_utc

logger = logging.getLogger(__name__)

SCRAPE_POSTS_JOB = "scrape_posts_job"
SCRAPE_PROFILE_JOB = "scrape_profile_job"
RETRY_SNAPSHOT_JOB = "retry_snapshot_job"


class TargetProfileNotFound(Exception):
    """The target has no stored profile URL for the requested platform."""


async def enqueue_posts_scrape(
    redis: ArqRedis, scrape_job_id: str, defer_by: timedelta | int | None = None
) -> Job | None:
    """Queue the posts scrape for an existing ScrapeJob.

    The arq job id is derived from the ScrapeJob id, so queueing the same
    ScrapeJob twice is a no-op (arq returns None).
    """
    job = await redis.enqueue_job(
        SCRAPE_POSTS_JOB,
        scrape_job_id,
        _job_id=f"scrape-posts:{scrape_job_id}",
        _queue_name=ARQ_QUEUE_NAME,
        _defer_by=defer_by,
    )
    if job is None:
        logger.info("Posts scrape for job %s already queued", scrape_job_id)
    else:
        logger.info("Queued posts scrape for job %s (defer: %s)", scrape_job_id, defer_by)
    return job


async def enqueue_snapshot_retry(
    redis: ArqRedis, payload: dict[str, Any], defer_by: timedelta | int = RETRY_SNAPSHOT_DELAY
) -> Job | None:
    job = await redis.enqueue_job(RETRY_SNAPSHOT_JOB, payload, _queue_name=ARQ_QUEUE_NAME, _defer_by=defer_by)
    logger.info(
        "Queued snapshot retry %d for competitor %s in %ss",
        payload["attempt"], payload["competitor_id"], defer_by,
    )
    return job


async def resolve_target_url(db: AsyncSession, target_id: str, platform: str) -> str:
    result = await db.execute(
        select(CompanyPlatform.profile_url)
        .join(Platform, Platform.id == CompanyPlatform.platform_id)
        .where(CompanyPlatform.company_id == target_id, Platform.name == platform)
    )
    url = result.scalar_one_or_none()
    if not url:
        raise TargetProfileNotFound(f"No {platform} profile URL stored for target {target_id}")
    return url


async def request_posts_scrape(
    db: AsyncSession,
    redis: ArqRedis,
    company_id: str,
    target_id: str,
    target_url: str | None = None,
    platform: str | None = None,
) -> tuple[ScrapeJob, bool]:
    """Start scraping ``target_id`` on behalf of ``company_id``.

    Returns ``(job, created)``. When an active job already exists for the pair
    it is returned with ``created=False`` and nothing new is queued.
    """
    platform = platform or get_settings().default_platform

    existing = await find_active_job_for_target(db, company_id, target_id)
    if existing:
        logger.info(
            "Scrape already active for %s -> %s (job %s), not creating another",
            company_id, target_id, existing.id,
        )
        return existing, False

    if not target_url:
        target_url = await resolve_target_url(db, target_id, platform)

    job = await create_scrape_job(db, company_id, target_id, target_url, platform, ScrapeType.POSTS)
    await enqueue_posts_scrape(redis, job.id)
    return job, True


async def request_competitor_sync(
    redis: ArqRedis,
    company_id: str,
    competitor_id: str,
    competitor_name: str,
    url: str,
    type: str,
) -> Job | None:
    """Queue a profile/company scrape; the posts scrape is scheduled after it."""
    scrape_type = ScrapeType(type)
    if scrape_type not in (ScrapeType.COMPANY, ScrapeType.PROFILE):
        raise ValueError(f"Competitor sync expects 'company' or 'profile', got {type!r}")

    payload = {
        "company_id": company_id,
        "competitor_id": competitor_id,
        "competitor_name": competitor_name,
        "url": url,
        "type": str(scrape_type),
    }
    job = await redis.enqueue_job(SCRAPE_PROFILE_JOB, payload, _queue_name=ARQ_QUEUE_NAME)
    logger.info("Queued %s sync for competitor %s (%s)", scrape_type, competitor_name, competitor_id)
    return job


async def get_queue_status(redis: ArqRedis) -> dict[str, Any]:
    """Queued, deferred and in-flight counts for the scrape queue."""
    queued = await redis.queued_jobs(queue_name=ARQ_QUEUE_NAME)
    now_ms = now_utc().timestamp() * 1000

    deferred = sum(1 for job in queued if job.score and job.score > now_ms)
    in_progress = [key async for key in redis.scan_iter(match=f"{in_progress_key_prefix}*")]

    return {
        "queue_name": ARQ_QUEUE_NAME,
        "waiting": len(queued) - deferred,
        "deferred": deferred,
        "in_progress": len(in_progress),
        "jobs": [
            {"function": job.function, "job_try": job.job_try, "enqueue_time": job.enqueue_time}
            for job in queued
        ],
    }

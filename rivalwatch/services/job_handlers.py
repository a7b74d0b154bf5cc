"""Processing logic behind the arq job functions in ``rivalwatch.worker``.

The worker builds one ScrapeServices at startup and hands it to every job,
so all provider traffic in the process shares one ProviderCallQueue.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from arq import ArqRedis, Retry
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivalwatch.config import get_settings
from rivalwatch.constants import (
    ARQ_MAX_TRIES,
    ARQ_RETRY_BACKOFF,
    EVENT_PROFILE_READY,
    EVENT_SCRAPE_SCHEDULED,
    EVENT_SYNC_FAILED,
    POSTS_SCRAPE_DELAY,
    PROVIDER_MIN_INTERVAL,
    RETRY_SNAPSHOT_MAX_ATTEMPTS,
)
from rivalwatch.models.company import Company
from rivalwatch.models.scrape_job import ScrapeType
from rivalwatch.providers.base import ScrapeProvider
from rivalwatch.providers.brightdata import find_snapshot_ticket
from rivalwatch.services.async_scraper import ScrapeOrchestrator
from rivalwatch.services.cache import CacheInvalidator
from rivalwatch.services.events import EventPublisher, RedisEventPublisher
from rivalwatch.services.job_queue import enqueue_posts_scrape, enqueue_snapshot_retry
from rivalwatch.services.post_store import record_follower_snapshot
from rivalwatch.services.provider_queue import ProviderCallQueue
from rivalwatch.services.scrape_job_service import create_scrape_job, find_active_job_for_target
from rivalwatch.services.snapshot_checker import SnapshotChecker

logger = logging.getLogger(__name__)


@dataclass
class ScrapeServices:
    """Process-wide collaborators, constructed once per worker process."""

    session_factory: async_sessionmaker[AsyncSession]
    provider: ScrapeProvider
    provider_queue: ProviderCallQueue
    events: EventPublisher
    cache: CacheInvalidator
    orchestrator: ScrapeOrchestrator
    snapshot_checker: SnapshotChecker

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        provider: ScrapeProvider,
        redis: Redis | None,
        min_interval: float = PROVIDER_MIN_INTERVAL,
    ) -> "ScrapeServices":
        provider_queue = ProviderCallQueue(provider, min_interval=min_interval)
        events = RedisEventPublisher(redis)
        cache = CacheInvalidator(redis)
        return cls(
            session_factory=session_factory,
            provider=provider,
            provider_queue=provider_queue,
            events=events,
            cache=cache,
            orchestrator=ScrapeOrchestrator(session_factory, provider_queue, events, cache),
            snapshot_checker=SnapshotChecker(session_factory, provider, events, cache),
        )

    def start(self) -> None:
        self.provider_queue.start()

    async def close(self) -> None:
        await self.provider_queue.close()


@dataclass
class ProfileData:
    followers: int
    profile_picture_url: str | None


def parse_profile_result(results: list[dict[str, Any]], scrape_type: str) -> ProfileData | None:
    """Follower count and picture URL from a company/profile scrape.

    Returns None when the provider answered with a ticket.
    """
    if find_snapshot_ticket(results):
        return None
    if not results:
        return ProfileData(followers=0, profile_picture_url=None)

    data = results[0]
    if scrape_type == ScrapeType.COMPANY:
        return ProfileData(followers=data.get("followers") or 0, profile_picture_url=data.get("logo"))
    return ProfileData(
        followers=data.get("followers") or data.get("connections") or 0,
        profile_picture_url=data.get("avatar"),
    )


async def _fetch_profile(services: ScrapeServices, payload: dict[str, Any]) -> ProfileData | None:
    if payload["type"] == ScrapeType.COMPANY:
        results = await services.provider_queue.scrape_company(payload["url"])
    else:
        results = await services.provider_queue.scrape_profile(payload["url"])
    return parse_profile_result(results, payload["type"])


async def _apply_profile(services: ScrapeServices, payload: dict[str, Any], profile: ProfileData) -> None:
    """Persist logo/followers and tell the client the competitor card is ready."""
    company_id = payload["company_id"]
    competitor_id = payload["competitor_id"]

    async with services.session_factory() as db:
        if profile.profile_picture_url:
            competitor = await db.get(Company, competitor_id)
            if competitor:
                competitor.profile_picture_url = profile.profile_picture_url
                await db.commit()
        if profile.followers > 0:
            await record_follower_snapshot(
                db, competitor_id, payload.get("platform") or get_settings().default_platform, profile.followers
            )

    await services.cache.invalidate_competitor_list(company_id)
    await services.events.emit(
        company_id,
        EVENT_PROFILE_READY,
        {
            "competitorId": competitor_id,
            "name": payload["competitor_name"],
            "profilePictureUrl": profile.profile_picture_url,
            "followers": profile.followers,
        },
    )
    logger.info("Profile ready for %s: %d followers", payload["competitor_name"], profile.followers)


async def _schedule_posts_scrape(services: ScrapeServices, redis: ArqRedis, payload: dict[str, Any]) -> str | None:
    company_id = payload["company_id"]
    competitor_id = payload["competitor_id"]
    platform = payload.get("platform") or get_settings().default_platform

    async with services.session_factory() as db:
        existing = await find_active_job_for_target(db, company_id, competitor_id)
        if existing:
            logger.info("Posts scrape already active for %s (job %s)", competitor_id, existing.id)
            return None
        job = await create_scrape_job(db, company_id, competitor_id, payload["url"], platform, payload["type"])

    await enqueue_posts_scrape(redis, job.id, defer_by=POSTS_SCRAPE_DELAY)
    await services.events.emit(
        company_id,
        EVENT_SCRAPE_SCHEDULED,
        {
            "jobId": job.id,
            "targetId": competitor_id,
            "targetName": payload["competitor_name"],
            "delaySeconds": POSTS_SCRAPE_DELAY,
        },
    )
    return job.id


async def handle_scrape_profile(
    services: ScrapeServices, redis: ArqRedis, payload: dict[str, Any], job_try: int = 1
) -> str:
    """Company/profile scrape, then schedule the posts scrape.

    Failures are retried by arq with exponential backoff until ARQ_MAX_TRIES.
    """
    logger.info("Scraping %s for %s: %s", payload["type"], payload["competitor_name"], payload["url"])
    try:
        profile = await _fetch_profile(services, payload)
        if profile is None:
            logger.info("Provider returned a ticket for %s, retrying later", payload["competitor_name"])
            await enqueue_snapshot_retry(redis, {**payload, "attempt": 1})
            return "snapshot_retry_scheduled"

        await _apply_profile(services, payload, profile)
        scrape_job_id = await _schedule_posts_scrape(services, redis, payload)
        return f"posts_scheduled:{scrape_job_id}" if scrape_job_id else "posts_already_active"
    except Exception as e:
        logger.error("Profile scrape failed for %s: %s", payload["competitor_name"], e)
        await services.events.emit(
            payload["company_id"],
            EVENT_SYNC_FAILED,
            {"competitorId": payload["competitor_id"], "name": payload["competitor_name"], "error": str(e) or "Scrape failed"},
        )
        if job_try < ARQ_MAX_TRIES:
            raise Retry(defer=timedelta(seconds=ARQ_RETRY_BACKOFF * 2 ** (job_try - 1))) from e
        raise


async def handle_scrape_posts(services: ScrapeServices, scrape_job_id: str) -> None:
    await services.orchestrator.run(scrape_job_id)


async def handle_retry_snapshot(services: ScrapeServices, redis: ArqRedis, payload: dict[str, Any]) -> str:
    """Re-run a company/profile scrape that previously came back as a ticket."""
    attempt = payload["attempt"]
    name = payload["competitor_name"]
    logger.info("Snapshot retry attempt %d for %s", attempt, name)

    if attempt >= RETRY_SNAPSHOT_MAX_ATTEMPTS:
        logger.warning("Max snapshot retries reached for %s", name)
        await _sync_failed(services, payload, "Max retry attempts reached")
        return "max_attempts"

    try:
        profile = await _fetch_profile(services, payload)
    except Exception as e:
        logger.error("Snapshot retry failed for %s: %s", name, e)
        if attempt < RETRY_SNAPSHOT_MAX_ATTEMPTS - 1:
            await enqueue_snapshot_retry(redis, {**payload, "attempt": attempt + 1})
            return "rescheduled"
        await _sync_failed(services, payload, str(e) or "Retry failed")
        return "failed"

    if profile is None:
        await enqueue_snapshot_retry(redis, {**payload, "attempt": attempt + 1})
        return "rescheduled"

    await _apply_profile(services, payload, profile)
    return "profile_ready"


async def _sync_failed(services: ScrapeServices, payload: dict[str, Any], error: str) -> None:
    await services.events.emit(
        payload["company_id"],
        EVENT_SYNC_FAILED,
        {"competitorId": payload["competitor_id"], "name": payload["competitor_name"], "error": error},
    )

"""Scrape orchestrator: drives one ScrapeJob from pending to a terminal state.

pending -> in_progress -> completed | failed. The provider call goes through
the shared ProviderCallQueue with a bounded retry. If the provider answers
with a ticket instead of data, a PendingSnapshot is recorded and the job is
left in progress for the SnapshotChecker to finish.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivalwatch.constants import (
    EVENT_SCRAPE_COMPLETED,
    EVENT_SCRAPE_FAILED,
    EVENT_SCRAPE_PROGRESS,
    EVENT_SCRAPE_STARTED,
    SCRAPE_MAX_ATTEMPTS,
    SCRAPE_RETRY_DELAY,
)
from rivalwatch.models.scrape_job import ScrapeJob
from rivalwatch.providers.brightdata import classify_discovery_mode, find_snapshot_ticket
from rivalwatch.services.cache import CacheInvalidator
from rivalwatch.services.events import EventPublisher
from rivalwatch.services.post_store import (
    author_follower_count,
    ensure_platform,
    record_platform_snapshot,
    select_recent_posts,
    store_posts,
)
from rivalwatch.services.provider_queue import ProviderCallQueue
from rivalwatch.services.scrape_job_service import (
    get_scrape_job,
    mark_job_completed,
    mark_job_failed,
    mark_job_started,
    update_job_progress,
)
from rivalwatch.services.snapshot_checker import create_pending_snapshot

logger = logging.getLogger(__name__)


class ScrapeOrchestrator:
    """Runs posts scrapes for existing ScrapeJob rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider_queue: ProviderCallQueue,
        events: EventPublisher,
        cache: CacheInvalidator | None = None,
        max_attempts: int = SCRAPE_MAX_ATTEMPTS,
        retry_delay: float = SCRAPE_RETRY_DELAY,
    ):
        self.session_factory = session_factory
        self.provider_queue = provider_queue
        self.events = events
        self.cache = cache
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def run(self, job_id: str) -> None:
        """Execute a scrape job end to end. Never raises for provider failures."""
        async with self.session_factory() as db:
            job = await get_scrape_job(db, job_id)
            if job is None:
                logger.error("Scrape job %s not found", job_id)
                return

            company_id = job.company_id
            target_id = job.target_id
            target_url = job.target_url
            target_name = job.target_company.name if job.target_company else target_url
            logger.info("Starting scrape job %s for %s (%s)", job_id, target_name, target_url)

            try:
                if await mark_job_started(db, job_id) is None:
                    return
                await self.events.emit(
                    company_id,
                    EVENT_SCRAPE_STARTED,
                    {"jobId": job_id, "targetId": target_id, "targetName": target_name},
                )

                discover_by = classify_discovery_mode(target_url)
                logger.info("Using discover_by=%s for %s", discover_by, target_url)

                await update_job_progress(db, job_id, 30)
                await self._progress(company_id, job_id, 30, f"Fetching posts from {job.platform}...")

                results = await self._fetch_with_retry(
                    job_id,
                    company_id,
                    lambda: self.provider_queue.scrape_posts(target_url, discover_by),
                )
                logger.info("Provider returned %d items for job %s", len(results), job_id)

                ticket = find_snapshot_ticket(results)
                if ticket:
                    await self._hand_off_ticket(db, job, ticket)
                    return

                await self._materialize(db, job, results)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.error("Scrape job %s failed: %s", job_id, message, exc_info=True)
                await db.rollback()
                if await mark_job_failed(db, job_id, message):
                    await self.events.emit(
                        company_id,
                        EVENT_SCRAPE_FAILED,
                        {"jobId": job_id, "targetId": target_id, "error": message},
                    )

    async def _fetch_with_retry(
        self,
        job_id: str,
        company_id: str,
        fetch: Callable[[], Awaitable[list[dict[str, Any]]]],
    ) -> list[dict[str, Any]]:
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fetch()
            except Exception as e:
                last_error = e
                logger.warning("Job %s attempt %d/%d failed: %s", job_id, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
                    await self._progress(
                        company_id,
                        job_id,
                        20 + attempt * 10,
                        f"Retrying... (attempt {attempt + 1}/{self.max_attempts})",
                    )

        raise last_error

    async def _hand_off_ticket(self, db: AsyncSession, job: ScrapeJob, ticket: str) -> None:
        job_id, company_id = job.id, job.company_id

        current = await db.get(ScrapeJob, job_id, populate_existing=True)
        if current is None or current.status.is_terminal:
            logger.warning("Discarding snapshot %s for job %s: job no longer active", ticket, job_id)
            return

        await create_pending_snapshot(
            db,
            snapshot_id=ticket,
            scrape_job_id=job_id,
            company_id=company_id,
            target_id=current.target_id,
            target_url=current.target_url,
            platform=current.platform,
        )
        await update_job_progress(db, job_id, 40)
        await self._progress(
            company_id,
            job_id,
            40,
            "Data processing started, will complete in background...",
        )
        logger.info("Job %s waiting on provider snapshot %s", job_id, ticket)

    async def _materialize(self, db: AsyncSession, job: ScrapeJob, results: list[dict[str, Any]]) -> None:
        job_id, company_id, target_id = job.id, job.company_id, job.target_id
        platform_id = (await ensure_platform(db, job.platform)).id

        current = await db.get(ScrapeJob, job_id, populate_existing=True)
        if current is None or current.status.is_terminal:
            logger.warning("Discarding late results for job %s: job no longer active", job_id)
            return

        recent = select_recent_posts(results)
        await update_job_progress(db, job_id, 60)
        await self._progress(company_id, job_id, 60, f"Processing {len(recent)} posts...")

        # store_posts may roll back per post, which expires loaded rows; use plain ids from here on.
        stored = await store_posts(db, target_id, platform_id, recent)

        await update_job_progress(db, job_id, 90)
        await self._progress(company_id, job_id, 90, "Finalizing...")
        await record_platform_snapshot(db, target_id, platform_id, follower_count=author_follower_count(recent))
        if self.cache:
            await self.cache.invalidate_competitor(company_id, target_id)

        if await mark_job_completed(db, job_id, stored):
            await self.events.emit(
                company_id,
                EVENT_SCRAPE_COMPLETED,
                {"jobId": job_id, "targetId": target_id, "postsScraped": stored},
            )

    async def _progress(self, company_id: str, job_id: str, progress: int, message: str) -> None:
        await self.events.emit(
            company_id,
            EVENT_SCRAPE_PROGRESS,
            {"jobId": job_id, "progress": progress, "message": message},
        )

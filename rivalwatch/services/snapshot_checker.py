"""Background poller for provider tickets (PendingSnapshot rows).

Runs as an arq cron every SNAPSHOT_CHECK_INTERVAL seconds. Each sweep walks
the outstanding tickets oldest first and either resolves them (posts stored,
job completed), fails them (provider error, too old, too many attempts) or
leaves them for the next sweep with a progress nudge to the client.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivalwatch.constants import (
    EVENT_SCRAPE_COMPLETED,
    EVENT_SCRAPE_FAILED,
    EVENT_SCRAPE_PROGRESS,
    SNAPSHOT_CHECK_DELAY,
    SNAPSHOT_CHECKER_MODEL_VERSION,
    SNAPSHOT_MAX_AGE,
    SNAPSHOT_MAX_ATTEMPTS,
    SNAPSHOT_PROGRESS_CEILING,
    SNAPSHOT_PROGRESS_FLOOR,
)
from rivalwatch.models.pending_snapshot import PendingSnapshot
from rivalwatch.models.scrape_job import ScrapeJob
from rivalwatch.providers.base import ScrapeProvider
from rivalwatch.services.cache import CacheInvalidator
from rivalwatch.services.events import EventPublisher
from rivalwatch.services.post_store import (
    author_follower_count,
    ensure_platform,
    record_platform_snapshot,
    store_posts,
)
from rivalwatch.services.scrape_job_service import mark_job_completed, mark_job_failed
from rivalwatch.utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)


async def create_pending_snapshot(
    db: AsyncSession,
    snapshot_id: str,
    scrape_job_id: str,
    company_id: str,
    target_id: str,
    target_url: str,
    platform: str,
    max_attempts: int = SNAPSHOT_MAX_ATTEMPTS,
) -> PendingSnapshot:
    """Record a ticket so the poller picks it up on its next sweep."""
    pending = PendingSnapshot(
        snapshot_id=snapshot_id,
        scrape_job_id=scrape_job_id,
        company_id=company_id,
        target_id=target_id,
        target_url=target_url,
        platform=platform,
        attempts=0,
        max_attempts=max_attempts,
    )
    db.add(pending)
    await db.commit()
    await db.refresh(pending)

    logger.info("Created pending snapshot %s for job %s", snapshot_id, scrape_job_id)
    return pending


async def job_has_pending_snapshot(db: AsyncSession, scrape_job_id: str) -> bool:
    result = await db.execute(
        select(PendingSnapshot.id).where(PendingSnapshot.scrape_job_id == scrape_job_id).limit(1)
    )
    return result.scalar_one_or_none() is not None


def snapshot_progress(attempts: int, max_attempts: int) -> int:
    """Interpolate 30..80% from the attempt ratio."""
    band = SNAPSHOT_PROGRESS_CEILING - SNAPSHOT_PROGRESS_FLOOR
    ratio = attempts / max_attempts if max_attempts else 1
    progress = SNAPSHOT_PROGRESS_FLOOR + round(ratio * band)
    return min(max(SNAPSHOT_PROGRESS_FLOOR, progress), SNAPSHOT_PROGRESS_CEILING)


class SnapshotChecker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: ScrapeProvider,
        events: EventPublisher,
        cache: CacheInvalidator | None = None,
        max_age: timedelta = timedelta(seconds=SNAPSHOT_MAX_AGE),
        check_delay: float = SNAPSHOT_CHECK_DELAY,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.events = events
        self.cache = cache
        self.max_age = max_age
        self.check_delay = check_delay
        self._lock = asyncio.Lock()

    @property
    def is_checking(self) -> bool:
        return self._lock.locked()

    async def check_all(self) -> int:
        """Process every outstanding ticket once. Returns how many were visited.

        A sweep that starts while the previous one is still running is skipped.
        """
        if self._lock.locked():
            logger.info("Previous snapshot sweep still running, skipping this tick")
            return 0

        async with self._lock:
            async with self.session_factory() as db:
                result = await db.execute(select(PendingSnapshot.id).order_by(PendingSnapshot.created_at))
                pending_ids = list(result.scalars().all())

            if not pending_ids:
                return 0

            logger.info("Checking %d pending snapshots", len(pending_ids))
            for index, pending_id in enumerate(pending_ids):
                try:
                    await self.process(pending_id)
                except Exception as e:
                    logger.error("Error checking pending snapshot %s: %s", pending_id, e, exc_info=True)
                if self.check_delay and index < len(pending_ids) - 1:
                    await asyncio.sleep(self.check_delay)

            return len(pending_ids)

    async def process(self, pending_id: str) -> None:
        async with self.session_factory() as db:
            pending = await db.get(PendingSnapshot, pending_id)
            if pending is None:
                return
            ticket = _Ticket.from_row(pending)

            job = await db.get(ScrapeJob, ticket.scrape_job_id)
            if job is None or job.status.is_terminal:
                logger.warning(
                    "Dropping snapshot %s: job %s no longer active", ticket.snapshot_id, ticket.scrape_job_id
                )
                await self._delete(db, ticket)
                return

            age =now_utc() - ensure_utc(pending.created_at)
            if age > self.max_age:
                minutes = int(self.max_age.total_seconds() // 60)
                await self._fail(db, ticket, f"Snapshot expired after {minutes} minutes")
                return

            if pending.attempts >= pending.max_attempts:
                await self._fail(db, ticket, f"Snapshot check exceeded max attempts ({pending.max_attempts})")
                return

            pending.attempts += 1
            pending.last_checked_at = now_utc()
            attempts, max_attempts = pending.attempts, pending.max_attempts
            await db.commit()

            # Transport errors propagate; the ticket stays for the next sweep.
            status = await self.provider.check_snapshot_status(ticket.snapshot_id)

            if status.status == "ready":
                await self._resolve(db, ticket, status.data)
            elif status.status == "error":
                await self._fail(db, ticket, "Provider reported snapshot failure")
            else:
                logger.debug(
                    "Snapshot %s still processing (attempt %d/%d)", ticket.snapshot_id, attempts, max_attempts
                )
                await self.events.emit(
                    ticket.company_id,
                    EVENT_SCRAPE_PROGRESS,
                    {
                        "jobId": ticket.scrape_job_id,
                        "progress": snapshot_progress(attempts, max_attempts),
                        "message": f"Processing data... (check {attempts}/{max_attempts})",
                    },
                )

    async def _resolve(self, db: AsyncSession, ticket: "_Ticket", data: list[dict]) -> None:
        job = await db.get(ScrapeJob, ticket.scrape_job_id, populate_existing=True)
        if job is None or job.status.is_terminal:
            logger.warning(
                "Discarding snapshot %s: job %s no longer active", ticket.snapshot_id, ticket.scrape_job_id
            )
            await self._delete(db, ticket)
            return

        platform_id = (await ensure_platform(db, ticket.platform)).id
        stored = await store_posts(
            db, ticket.target_id, platform_id, data, model_version=SNAPSHOT_CHECKER_MODEL_VERSION
        )
        await record_platform_snapshot(
            db, ticket.target_id, platform_id, follower_count=author_follower_count(data)
        )

        completed = await mark_job_completed(db, ticket.scrape_job_id, stored)
        await self._delete(db, ticket)
        if self.cache:
            await self.cache.invalidate_competitor(ticket.company_id, ticket.target_id)

        if completed:
            logger.info(
                "Snapshot %s resolved: %d posts stored for job %s",
                ticket.snapshot_id, stored, ticket.scrape_job_id,
            )
            await self.events.emit(
                ticket.company_id,
                EVENT_SCRAPE_COMPLETED,
                {"jobId": ticket.scrape_job_id, "targetId": ticket.target_id, "postsScraped": stored},
            )

    async def _fail(self, db: AsyncSession, ticket: "_Ticket", message: str) -> None:
        logger.warning("Snapshot %s for job %s failed: %s", ticket.snapshot_id, ticket.scrape_job_id, message)

        await self._delete(db, ticket)
        if await mark_job_failed(db, ticket.scrape_job_id, message):
            await self.events.emit(
                ticket.company_id,
                EVENT_SCRAPE_FAILED,
                {"jobId": ticket.scrape_job_id, "targetId": ticket.target_id, "error": message},
            )

    async def _delete(self, db: AsyncSession, ticket: "_Ticket") -> None:
        await db.execute(delete(PendingSnapshot).where(PendingSnapshot.id == ticket.id))
        await db.commit()


@dataclass(frozen=True)
class _Ticket:
    """Plain copy of a PendingSnapshot row; stays valid across commits and rollbacks."""

    id: str
    snapshot_id: str
    scrape_job_id: str
    company_id: str
    target_id: str
    platform: str

    @classmethod
    def from_row(cls, row: PendingSnapshot) -> "_Ticket":
        return cls(
            id=row.id,
            snapshot_id=row.snapshot_id,
            scrape_job_id=row.scrape_job_id,
            company_id=row.company_id,
            target_id=row.target_id,
            platform=row.platform,
        )

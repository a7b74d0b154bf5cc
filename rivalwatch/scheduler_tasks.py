"""Scheduler tasks: housekeeping for ScrapeJob rows left behind by crashes."""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivalwatch.constants import EVENT_SCRAPE_FAILED, JOB_RETENTION_DAYS, STUCK_JOB_THRESHOLD
from rivalwatch.services.events import EventPublisher
from rivalwatch.services.scrape_job_service import cleanup_old_jobs, find_stuck_jobs, mark_job_failed
from rivalwatch.services.snapshot_checker import job_has_pending_snapshot

logger = logging.getLogger(__name__)

RECOVERY_MESSAGE = "Job timed out (server restart recovery)"


async def recover_stuck_jobs(
    session_factory: async_sessionmaker[AsyncSession],
    events: EventPublisher,
    threshold: timedelta = timedelta(seconds=STUCK_JOB_THRESHOLD),
) -> int:
    """Fail pending/in-progress jobs older than ``threshold``.

    Runs at worker startup and every few minutes via ARQ cron. Jobs still
    waiting on a provider ticket are left to the snapshot checker, which
    expires them on its own schedule, so an old active job is only
    guaranteed to be failed here when it owns no PendingSnapshot. The
    provider call itself is never resumed; clients must request a new scrape.
    """
    recovered = 0

    async with session_factory() as db:
        stuck = await find_stuck_jobs(db, threshold)
        if not stuck:
            logger.debug("No stuck scrape jobs")
            return 0

        for job in stuck:
            if await job_has_pending_snapshot(db, job.id):
                logger.debug("Job %s is waiting on a provider snapshot, leaving it", job.id)
                continue

            if await mark_job_failed(db, job.id, RECOVERY_MESSAGE) is None:
                continue
            recovered += 1

            # Event transport may not be up yet at boot; the row is authoritative.
            await events.emit(
                job.company_id,
                EVENT_SCRAPE_FAILED,
                {"jobId": job.id, "targetId": job.target_id, "error": RECOVERY_MESSAGE},
            )

    logger.info("Recovery: %d stuck jobs found, %d marked failed", len(stuck), recovered)
    return recovered


async def cleanup_finished_jobs(
    session_factory: async_sessionmaker[AsyncSession],
    older_than_days: int = JOB_RETENTION_DAYS,
) -> int:
    async with session_factory() as db:
        return await cleanup_old_jobs(db, older_than_days)

"""ARQ worker: background scrape processing.

Run exactly one worker process against ARQ_QUEUE_NAME: the process owns the
ProviderCallQueue, which is what keeps provider calls spaced out.
"""

import logging

from arq import cron, func
from arq.connections import RedisSettings

from rivalwatch.config import get_settings
from rivalwatch.constants import (
    ARQ_JOB_TIMEOUT,
    ARQ_MAX_JOBS,
    ARQ_MAX_TRIES,
    ARQ_QUEUE_NAME,
    HEALTH_CHECK_INTERVAL_MINUTES,
    SNAPSHOT_CHECK_INTERVAL,
)
from rivalwatch.utils import setup_logging

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    from rivalwatch.db.session import async_session_factory
    from rivalwatch.http_client import init_http_client
    from rivalwatch.providers.brightdata import BrightDataClient
    from rivalwatch.services.job_handlers import ScrapeServices

    setup_logging(get_settings().debug)
    await init_http_client()

    services = ScrapeServices.build(async_session_factory, BrightDataClient(), ctx["redis"])
    services.start()
    ctx["services"] = services
    logger.info("Scrape worker started")


async def shutdown(ctx: dict) -> None:
    from rivalwatch.http_client import close_http_client

    services = ctx.get("services")
    if services:
        await services.close()
    await close_http_client()
    logger.info("Scrape worker stopped")


async def scrape_posts_job(ctx: dict, scrape_job_id: str) -> None:
    """ARQ job: run the posts scrape for one ScrapeJob row."""
    from rivalwatch.services.job_handlers import handle_scrape_posts

    await handle_scrape_posts(ctx["services"], scrape_job_id)


async def scrape_profile_job(ctx: dict, payload: dict) -> str:
    """ARQ job: company/profile scrape for a competitor, then schedule its posts."""
    from rivalwatch.services.job_handlers import handle_scrape_profile

    return await handle_scrape_profile(ctx["services"], ctx["redis"], payload, job_try=ctx.get("job_try", 1))


async def retry_snapshot_job(ctx: dict, payload: dict) -> str:
    """ARQ job: retry a company/profile scrape that came back as a ticket."""
    from rivalwatch.services.job_handlers import handle_retry_snapshot

    return await handle_retry_snapshot(ctx["services"], ctx["redis"], payload)


async def check_pending_snapshots(ctx: dict) -> None:
    """Cron job: advance outstanding provider tickets."""
    await ctx["services"].snapshot_checker.check_all()


async def recover_stuck_jobs_cron(ctx: dict) -> None:
    """Cron job: fail jobs stranded by a crash or redeploy."""
    from rivalwatch.scheduler_tasks import recover_stuck_jobs

    services = ctx["services"]
    await recover_stuck_jobs(services.session_factory, services.events)


async def cleanup_old_jobs_cron(ctx: dict) -> None:
    """Cron job: drop finished jobs past the retention window."""
    from rivalwatch.scheduler_tasks import cleanup_finished_jobs

    await cleanup_finished_jobs(ctx["services"].session_factory)


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        func(scrape_posts_job, max_tries=1),
        func(scrape_profile_job, max_tries=ARQ_MAX_TRIES),
        func(retry_snapshot_job, max_tries=1),
    ]
    cron_jobs = [
        cron(check_pending_snapshots, second=set(range(0, 60, SNAPSHOT_CHECK_INTERVAL))),
        cron(
            recover_stuck_jobs_cron,
            minute=set(range(0, 60, HEALTH_CHECK_INTERVAL_MINUTES)),
            run_at_startup=True,
        ),
        cron(cleanup_old_jobs_cron, hour=3, minute=0),  # Daily at 03:00 UTC
    ]
    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    queue_name = ARQ_QUEUE_NAME

    max_jobs = ARQ_MAX_JOBS
    job_timeout = ARQ_JOB_TIMEOUT

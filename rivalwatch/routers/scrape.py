"""Scrape routes: trigger scrapes and poll job status (JSON)."""

from arq import ArqRedis
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from rivalwatch.constants import SCRAPE_JOBS_PER_PAGE
from rivalwatch.db.session import get_db
from rivalwatch.models.scrape_job import ScrapeJobStatus
from rivalwatch.schemas.scrape_job import (
    CompetitorSyncRequest,
    CompetitorSyncResult,
    QueueStatusOut,
    ScrapeJobOut,
    ScrapeRequest,
    ScrapeRequestResult,
)
from rivalwatch.services.job_queue import (
    TargetProfileNotFound,
    get_queue_status,
    request_competitor_sync,
    request_posts_scrape,
)
from rivalwatch.services.scrape_job_service import get_scrape_job, list_scrape_jobs

router = APIRouter(prefix="/api", tags=["scrape"])


def get_arq_pool(request: Request) -> ArqRedis:
    pool = getattr(request.app.state, "arq_pool", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Job queue unavailable")
    return pool


@router.post(
    "/companies/{company_id}/competitors/{target_id}/scrape",
    response_model=ScrapeRequestResult,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_scrape(
    company_id: str,
    target_id: str,
    body: ScrapeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    redis: ArqRedis = Depends(get_arq_pool),
):
    body = body or ScrapeRequest()
    try:
        job, created = await request_posts_scrape(
            db, redis, company_id, target_id, target_url=body.target_url, platform=body.platform
        )
    except TargetProfileNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ScrapeRequestResult(job=ScrapeJobOut.model_validate(job), created=created)


@router.post(
    "/companies/{company_id}/competitors/{target_id}/sync",
    response_model=CompetitorSyncResult,
    status_code=status.HTTP_202_ACCEPTED,
)
async def sync_competitor(
    company_id: str,
    target_id: str,
    body: CompetitorSyncRequest,
    redis: ArqRedis = Depends(get_arq_pool),
):
    job = await request_competitor_sync(redis, company_id, target_id, body.name, body.url, body.type)
    return CompetitorSyncResult(queued=job is not None, arq_job_id=job.job_id if job else None)


@router.get("/scrape-jobs/{job_id}", response_model=ScrapeJobOut)
async def read_scrape_job(job_id: str, db: AsyncSession = Depends(get_db)):
    job = await get_scrape_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Scrape job not found")
    return job


@router.get("/companies/{company_id}/scrape-jobs", response_model=list[ScrapeJobOut])
async def read_company_scrape_jobs(
    company_id: str,
    status: ScrapeJobStatus | None = None,
    limit: int = Query(SCRAPE_JOBS_PER_PAGE, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    return await list_scrape_jobs(db, company_id, status=status, limit=limit)


@router.get("/scrape-queue/status", response_model=QueueStatusOut)
async def read_queue_status(redis: ArqRedis = Depends(get_arq_pool)):
    return await get_queue_status(redis)

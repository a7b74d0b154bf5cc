"""Scrape-job related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from rivalwatch.models.scrape_job import ScrapeJobStatus, ScrapeType


class ScrapeJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    target_id: str
    target_url: str
    platform: str
    scrape_type: ScrapeType
    status: ScrapeJobStatus
    progress: int
    posts_scraped: int
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ScrapeRequest(BaseModel):
    target_url: str | None = None
    platform: str | None = None


class ScrapeRequestResult(BaseModel):
    job: ScrapeJobOut
    created: bool


class CompetitorSyncRequest(BaseModel):
    name: str
    url: str
    type: Literal["company", "profile"] = "company"


class CompetitorSyncResult(BaseModel):
    queued: bool
    arq_job_id: str | None = None


class QueueStatusOut(BaseModel):
    queue_name: str
    waiting: int
    deferred: int
    in_progress: int

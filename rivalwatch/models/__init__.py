"""SQLAlchemy models for RivalWatch (PostgreSQL, SQLite for dev/tests)."""

from .base import Base
from .company import Company, CompanyPlatform, Platform
from .platform_snapshot import PlatformSnapshot
from .post import Post, PostAnalysis, PostSnapshot
from .scrape_job import ScrapeJob, ScrapeJobStatus, ScrapeType
from .pending_snapshot import PendingSnapshot

__all__ = [
    "Base",
    "Company",
    "CompanyPlatform",
    "Platform",
    "PlatformSnapshot",
    "Post",
    "PostAnalysis",
    "PostSnapshot",
    "ScrapeJob",
    "ScrapeJobStatus",
    "ScrapeType",
    "PendingSnapshot",
]

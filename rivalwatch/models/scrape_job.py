"""ScrapeJob model: one attempt to refresh a target's data."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rivalwatch.utils import now_utc
from .base import Base, new_id


class ScrapeJobStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScrapeJobStatus.COMPLETED, ScrapeJobStatus.FAILED)


ACTIVE_STATUSES = (ScrapeJobStatus.PENDING, ScrapeJobStatus.IN_PROGRESS)
TERMINAL_STATUSES = (ScrapeJobStatus.COMPLETED, ScrapeJobStatus.FAILED)


class ScrapeType(StrEnum):
    COMPANY = "company"
    PROFILE = "profile"
    POSTS = "posts"


def _enum_values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


class ScrapeJob(Base):
    __tablename__ = "scrape_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    target_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String(64), nullable=False)
    scrape_type: Mapped[ScrapeType] = mapped_column(
        Enum(ScrapeType, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[ScrapeJobStatus] = mapped_column(
        Enum(ScrapeJobStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        default=ScrapeJobStatus.PENDING,
        index=True,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    posts_scraped: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    initiating_company: Mapped["Company"] = relationship(foreign_keys=[company_id])
    target_company: Mapped["Company"] = relationship(foreign_keys=[target_id])

"""PlatformSnapshot model: periodic follower/post counts per company account."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rivalwatch.utils import now_utc
from .base import Base, new_id


class PlatformSnapshot(Base):
    __tablename__ = "platform_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    company_platform_id: Mapped[str] = mapped_column(
        ForeignKey("company_platforms.id"), nullable=False, index=True
    )
    follower_count: Mapped[int] = mapped_column(Integer, default=0)
    post_count: Mapped[int] = mapped_column(Integer, default=0)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, index=True)

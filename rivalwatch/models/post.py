"""Post, PostSnapshot and PostAnalysis models: scraped social posts and their metrics history."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rivalwatch.utils import now_utc
from .base import Base, new_id


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    platform_id: Mapped[str] = mapped_column(ForeignKey("platforms.id"), nullable=False)
    platform_post_id: Mapped[str] = mapped_column(String(128), nullable=False)
    caption_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    post_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")
    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        UniqueConstraint("company_id", "platform_id", "platform_post_id", name="uq_post_company_platform"),
    )

    snapshots: Mapped[list["PostSnapshot"]] = relationship(back_populates="post")
    analyses: Mapped[list["PostAnalysis"]] = relationship(back_populates="post")


class PostSnapshot(Base):
    __tablename__ = "post_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"), nullable=False, index=True)
    like_count: Mapped[int] = mapped_column(Integer, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, default=0)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    post: Mapped["Post"] = relationship(back_populates="snapshots")


class PostAnalysis(Base):
    __tablename__ = "post_analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"), nullable=False, index=True)
    model_version: Mapped[str] = mapped_column(String(64), nullable=False)
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    engagement: Mapped[int] = mapped_column(Integer, default=0)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    post: Mapped["Post"] = relationship(back_populates="analyses")

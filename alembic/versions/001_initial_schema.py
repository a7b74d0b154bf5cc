"""Initial schema: companies, platforms, posts, snapshots, scrape_jobs, pending_snapshots.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- companies ---
    op.create_table(
        "companies",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("profile_picture_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- platforms ---
    op.create_table(
        "platforms",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # --- company_platforms ---
    op.create_table(
        "company_platforms",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("platform_id", sa.String(36), nullable=False),
        sa.Column("profile_url", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["platform_id"], ["platforms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "platform_id", name="uq_company_platform"),
    )
    op.create_index("ix_company_platforms_company_id", "company_platforms", ["company_id"])

    # --- platform_snapshots ---
    op.create_table(
        "platform_snapshots",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("company_platform_id", sa.String(36), nullable=False),
        sa.Column("follower_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("post_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["company_platform_id"], ["company_platforms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_platform_snapshots_company_id", "platform_snapshots", ["company_id"])
    op.create_index("ix_platform_snapshots_company_platform_id", "platform_snapshots", ["company_platform_id"])
    op.create_index("ix_platform_snapshots_captured_at", "platform_snapshots", ["captured_at"])

    # --- posts ---
    op.create_table(
        "posts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("platform_id", sa.String(36), nullable=False),
        sa.Column("platform_post_id", sa.String(128), nullable=False),
        sa.Column("caption_text", sa.Text(), nullable=True),
        sa.Column("post_url", sa.Text(), server_default="", nullable=False),
        sa.Column("media_type", sa.String(16), server_default="text", nullable=False),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scraped_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["platform_id"], ["platforms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "platform_id", "platform_post_id", name="uq_post_company_platform"),
    )
    op.create_index("ix_posts_company_id", "posts", ["company_id"])
    op.create_index("ix_posts_posted_at", "posts", ["posted_at"])

    # --- post_snapshots ---
    op.create_table(
        "post_snapshots",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("post_id", sa.String(36), nullable=False),
        sa.Column("like_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("comment_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_snapshots_post_id", "post_snapshots", ["post_id"])

    # --- post_analyses ---
    op.create_table(
        "post_analyses",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("post_id", sa.String(36), nullable=False),
        sa.Column("model_version", sa.String(64), nullable=False),
        sa.Column("impressions", sa.Integer(), server_default="0", nullable=False),
        sa.Column("engagement", sa.Integer(), server_default="0", nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_analyses_post_id", "post_analyses", ["post_id"])

    # --- scrape_jobs ---
    op.create_table(
        "scrape_jobs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(64), nullable=False),
        sa.Column("scrape_type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column("posts_scraped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["target_id"], ["companies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scrape_jobs_company_id", "scrape_jobs", ["company_id"])
    op.create_index("ix_scrape_jobs_target_id", "scrape_jobs", ["target_id"])
    op.create_index("ix_scrape_jobs_status", "scrape_jobs", ["status"])
    op.create_index("ix_scrape_jobs_created_at", "scrape_jobs", ["created_at"])

    # --- pending_snapshots ---
    op.create_table(
        "pending_snapshots",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("snapshot_id", sa.String(128), nullable=False),
        sa.Column("scrape_job_id", sa.String(36), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(64), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default="60", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["scrape_job_id"], ["scrape_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("snapshot_id"),
    )
    op.create_index("ix_pending_snapshots_scrape_job_id", "pending_snapshots", ["scrape_job_id"])
    op.create_index("ix_pending_snapshots_company_id", "pending_snapshots", ["company_id"])
    op.create_index("ix_pending_snapshots_target_id", "pending_snapshots", ["target_id"])
    op.create_index("ix_pending_snapshots_created_at", "pending_snapshots", ["created_at"])


def downgrade() -> None:
    op.drop_table("pending_snapshots")
    op.drop_table("scrape_jobs")
    op.drop_table("post_analyses")
    op.drop_table("post_snapshots")
    op.drop_table("posts")
    op.drop_table("platform_snapshots")
    op.drop_table("company_platforms")
    op.drop_table("platforms")
    op.drop_table("companies")

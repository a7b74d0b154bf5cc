"""Post materialization: provider post objects -> Post / PostSnapshot / PostAnalysis rows.

Posts are deduplicated on (company, platform, provider post id). Re-seeing a
known post appends a metrics snapshot and leaves the post row untouched.
Only newly created posts count towards the returned total.
"""

import logging
import re
from datetime import datetime, UTC
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rivalwatch.constants import MAX_POSTS_PER_BATCH, PLACEHOLDER_IMPRESSIONS, POSTS_SCRAPE_MODEL_VERSION
from rivalwatch.models.company import CompanyPlatform, Platform
from rivalwatch.models.platform_snapshot import PlatformSnapshot
from rivalwatch.models.post import Post, PostAnalysis, PostSnapshot
from rivalwatch.providers.brightdata import is_snapshot_ticket
from rivalwatch.utils import now_utc, parse_timestamp

logger = logging.getLogger(__name__)

_ACTIVITY_ID_RE = re.compile(r"activity-(\d+)")
_ACTIVITY_URN_RE = re.compile(r"urn:li:activity:(\d+)")

_OLDEST = datetime.min.replace(tzinfo=UTC)


def extract_post_id_from_url(url: str | None) -> str | None:
    """Pull the numeric activity id out of a LinkedIn post URL or URN."""
    if not url:
        return None
    for pattern in (_ACTIVITY_ID_RE, _ACTIVITY_URN_RE):
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def derive_post_id(post: dict[str, Any]) -> str | None:
    explicit = post.get("id") or post.get("post_id")
    if explicit:
        return str(explicit)
    return extract_post_id_from_url(post.get("url") or post.get("post_url"))


def determine_media_type(post: dict[str, Any]) -> str:
    """video > carousel > image > document > text."""
    images = post.get("images") or []
    if post.get("videos"):
        return "video"
    if len(images) > 1:
        return "carousel"
    if len(images) == 1:
        return "image"
    if post.get("document_cover_image"):
        return "document"
    return "text"


def post_date(post: dict[str, Any]) -> datetime | None:
    raw = post.get("date_posted") or post.get("date")
    return parse_timestamp(raw) if isinstance(raw, str) else None


def _metric(post: dict[str, Any], primary: str, alternate: str) -> int:
    value = post.get(primary)
    if value is None:
        value = post.get(alternate)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def select_recent_posts(posts: list[dict[str, Any]], limit: int = MAX_POSTS_PER_BATCH) -> list[dict[str, Any]]:
    """Drop ticket objects, sort newest first by posted date, keep ``limit``."""
    real_posts = [p for p in posts if isinstance(p, dict) and not is_snapshot_ticket(p)]
    real_posts.sort(key=lambda p: post_date(p) or _OLDEST, reverse=True)
    return real_posts[:limit]


def author_follower_count(posts: list[dict[str, Any]]) -> int | None:
    """Follower count of the posting account, if the payload carries one."""
    for post in posts:
        followers = post.get("user_followers")
        if isinstance(followers, int) and followers > 0:
            return followers
    return None


async def ensure_platform(db: AsyncSession, name: str) -> Platform:
    result = await db.execute(select(Platform).where(Platform.name == name))
    platform = result.scalar_one_or_none()
    if platform is None:
        platform = Platform(name=name)
        db.add(platform)
        await db.commit()
        await db.refresh(platform)
        logger.info("Created platform %s", name)
    return platform


async def store_posts(
    db: AsyncSession,
    company_id: str,
    platform_id: str,
    posts: list[dict[str, Any]],
    model_version: str = POSTS_SCRAPE_MODEL_VERSION,
) -> int:
    """Persist up to MAX_POSTS_PER_BATCH of the newest posts. Returns the count of new posts."""
    batch = select_recent_posts(posts)
    stored = 0
    updated = 0
    skipped = 0

    for post in batch:
        platform_post_id = derive_post_id(post)
        if not platform_post_id:
            skipped += 1
            logger.warning("Skipping post without a derivable id: %s", str(post.get("url"))[:80])
            continue

        like_count = _metric(post, "num_likes", "likes_count")
        comment_count = _metric(post, "num_comments", "comments_count")

        try:
            result = await db.execute(
                select(Post).where(
                    Post.company_id == company_id,
                    Post.platform_id == platform_id,
                    Post.platform_post_id == platform_post_id,
                )
            )
            existing = result.scalar_one_or_none()

            if existing:
                db.add(PostSnapshot(post_id=existing.id, like_count=like_count, comment_count=comment_count))
                await db.commit()
                updated += 1
                continue

            created = Post(
                company_id=company_id,
                platform_id=platform_id,
                platform_post_id=platform_post_id,
                caption_text=post.get("post_text") or post.get("text"),
                post_url=post.get("url") or post.get("post_url") or "",
                media_type=determine_media_type(post),
                posted_at=post_date(post) or now_utc(),
            )
            db.add(created)
            await db.flush()

            db.add(PostSnapshot(post_id=created.id, like_count=like_count, comment_count=comment_count))
            db.add(
                PostAnalysis(
                    post_id=created.id,
                    model_version=model_version,
                    impressions=post.get("user_followers") or PLACEHOLDER_IMPRESSIONS,
                    engagement=like_count + comment_count,
                    summary=post.get("headline") or post.get("title") or "LinkedIn post",
                )
            )
            await db.commit()
            stored += 1
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to store post %s for %s: %s", platform_post_id, company_id, e)

    logger.info(
        "Stored posts for %s: %d new, %d updated, %d skipped (no id)",
        company_id, stored, updated, skipped,
    )
    return stored


async def _company_platform(db: AsyncSession, company_id: str, platform_id: str) -> CompanyPlatform | None:
    result = await db.execute(
        select(CompanyPlatform).where(
            CompanyPlatform.company_id == company_id,
            CompanyPlatform.platform_id == platform_id,
        )
    )
    return result.scalar_one_or_none()


async def _latest_snapshot(db: AsyncSession, company_platform_id: str) -> PlatformSnapshot | None:
    result = await db.execute(
        select(PlatformSnapshot)
        .where(PlatformSnapshot.company_platform_id == company_platform_id)
        .order_by(PlatformSnapshot.captured_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def record_platform_snapshot(
    db: AsyncSession,
    company_id: str,
    platform_id: str,
    follower_count: int | None = None,
) -> PlatformSnapshot | None:
    """Write a snapshot with the current post total when counts changed.

    The previous follower count is kept unless ``follower_count`` is given.
    Returns None when the company has no account on the platform or nothing changed.
    """
    company_platform = await _company_platform(db, company_id, platform_id)
    if company_platform is None:
        return None

    total_posts = await db.scalar(
        select(func.count(Post.id)).where(Post.company_id == company_id, Post.platform_id == platform_id)
    )
    latest = await _latest_snapshot(db, company_platform.id)
    followers = follower_count or (latest.follower_count if latest else 0)

    if latest and latest.post_count == total_posts and latest.follower_count == followers:
        return None

    snapshot = PlatformSnapshot(
        company_id=company_id,
        company_platform_id=company_platform.id,
        follower_count=followers,
        post_count=total_posts or 0,
    )
    db.add(snapshot)
    await db.commit()
    logger.info("Platform snapshot for %s: %d followers, %d posts", company_id, followers, total_posts or 0)
    return snapshot


async def record_follower_snapshot(
    db: AsyncSession, company_id: str, platform_name: str, follower_count: int
) -> PlatformSnapshot | None:
    """Store a fresh follower count from a company/profile scrape."""
    result = await db.execute(select(Platform).where(Platform.name == platform_name))
    platform = result.scalar_one_or_none()
    if platform is None:
        return None
    return await record_platform_snapshot(db, company_id, platform.id, follower_count=follower_count)

"""Read-side cache keys and invalidation after new scrape data lands."""

import logging

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class CacheKeys:
    @staticmethod
    def competitors(company_id: str) -> str:
        return f"vault:competitors:{company_id}"

    @staticmethod
    def competitor_details(competitor_id: str) -> str:
        return f"vault:competitor:{competitor_id}"

    @staticmethod
    def analytics_pattern(target_id: str) -> str:
        return f"analytics:{target_id}:*"


class CacheInvalidator:
    """Deletes cached competitor views. Failures are logged, never raised."""

    def __init__(self, redis: Redis | None):
        self.redis = redis

    async def invalidate_competitor(self, company_id: str, target_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(
                CacheKeys.competitors(company_id),
                CacheKeys.competitor_details(target_id),
            )
            stale = [key async for key in self.redis.scan_iter(match=CacheKeys.analytics_pattern(target_id))]
            if stale:
                await self.redis.delete(*stale)
        except Exception as e:
            logger.warning("Cache invalidation failed for %s/%s: %s", company_id, target_id, e)

    async def invalidate_competitor_list(self, company_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(CacheKeys.competitors(company_id))
        except Exception as e:
            logger.warning("Cache invalidation failed for %s: %s", company_id, e)

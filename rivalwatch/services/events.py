"""Live scrape events, published per initiating company over Redis pub/sub.

Delivery is at-most-once and best-effort: a publish failure (or Redis not
being connected yet during boot) is logged and dropped. The ScrapeJob row is
the durable record; events only nudge connected clients.
"""

import json
import logging
from typing import Any, Protocol

from redis.asyncio import Redis

from rivalwatch.constants import EVENT_CHANNEL_PREFIX

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def emit(self, company_id: str, event: str, payload: dict[str, Any]) -> None:
        ...


def company_channel(company_id: str) -> str:
    return f"{EVENT_CHANNEL_PREFIX}{company_id}"


class RedisEventPublisher:
    """Publishes ``{"event": ..., "data": ...}`` JSON messages to ``company:<id>``."""

    def __init__(self, redis: Redis | None):
        self.redis = redis

    async def emit(self, company_id: str, event: str, payload: dict[str, Any]) -> None:
        if self.redis is None:
            logger.debug("Event transport not ready, dropping %s for company %s", event, company_id)
            return
        message = json.dumps({"event": event, "data": payload}, default=str)
        try:
            await self.redis.publish(company_channel(company_id), message)
        except Exception as e:
            logger.warning("Failed to emit %s for company %s: %s", event, company_id, e)


class NullEventPublisher:
    """Drops every event; used when no transport is configured."""

    async def emit(self, company_id: str, event: str, payload: dict[str, Any]) -> None:
        logger.debug("Dropping %s for company %s: no event transport", event, company_id)

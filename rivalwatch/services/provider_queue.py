"""Provider call queue: a single rate-limited lane in front of the scraping provider.

Every outbound scrape call goes through one worker task that starts calls in
FIFO order and spaces call starts by at least ``min_interval`` seconds, no
matter how many coroutines enqueue concurrently. A failing call rejects only
its own caller; the lane moves on to the next request. Nothing here is
persisted: callers record their intent (ScrapeJob / PendingSnapshot rows)
before enqueueing, so a crash only loses the in-flight call.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from rivalwatch.constants import PROVIDER_MIN_INTERVAL
from rivalwatch.providers.base import DateRange, DiscoveryMode, ScrapeProvider

logger = logging.getLogger(__name__)

OperationType = Literal["company", "profile", "posts"]


class ProviderQueueClosed(Exception):
    """Raised when enqueueing on (or waiting in) a queue that has been closed."""


@dataclass
class _QueueItem:
    id: str
    type: OperationType
    url: str
    future: asyncio.Future
    added_at: float
    discover_by: DiscoveryMode | None = None
    date_range: DateRange | None = None


@dataclass
class QueueStatus:
    queue_length: int
    processing: bool
    items: list[dict[str, Any]] = field(default_factory=list)


class ProviderCallQueue:
    """Serializes provider calls with a minimum spacing between call starts."""

    def __init__(self, provider: ScrapeProvider, min_interval: float = PROVIDER_MIN_INTERVAL):
        self.provider = provider
        self.min_interval = min_interval
        self._queue: asyncio.Queue[_QueueItem | None] = asyncio.Queue()
        self._pending: list[_QueueItem] = []
        self._worker: asyncio.Task | None = None
        self._processing = False
        self._closed = False
        self._last_call: float | None = None
        self._counter = itertools.count(1)

    # --- public API ---

    async def scrape_company(self, url: str) -> list[dict[str, Any]]:
        return await self._enqueue("company", url)

    async def scrape_profile(self, url: str) -> list[dict[str, Any]]:
        return await self._enqueue("profile", url)

    async def scrape_posts(
        self,
        url: str,
        discover_by: DiscoveryMode,
        date_range: DateRange | None = None,
    ) -> list[dict[str, Any]]:
        return await self._enqueue("posts", url, discover_by, date_range)

    def start(self) -> None:
        """Start the worker task. Called lazily on first enqueue as well."""
        if self._closed:
            raise ProviderQueueClosed("Provider queue is closed")
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="provider-call-queue")

    async def close(self) -> None:
        """Stop accepting work, fail anything still waiting, and stop the worker."""
        if self._closed:
            return
        self._closed = True

        for item in self._pending:
            if not item.future.done():
                item.future.set_exception(ProviderQueueClosed("Provider queue closed before call started"))
        self._pending.clear()

        if self._worker and not self._worker.done():
            self._queue.put_nowait(None)
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        logger.info("Provider call queue closed")

    def status(self) -> QueueStatus:
        loop = asyncio.get_running_loop()
        return QueueStatus(
            queue_length=len(self._pending),
            processing=self._processing,
            items=[
                {
                    "id": item.id,
                    "type": item.type,
                    "url": item.url,
                    "waiting_seconds": round(loop.time() - item.added_at, 1),
                }
                for item in self._pending
            ],
        )

    # --- internals ---

    async def _enqueue(
        self,
        type_: OperationType,
        url: str,
        discover_by: DiscoveryMode | None = None,
        date_range: DateRange | None = None,
    ) -> list[dict[str, Any]]:
        if self._closed:
            raise ProviderQueueClosed("Provider queue is closed")

        loop = asyncio.get_running_loop()
        item = _QueueItem(
            id=f"{type_}-{next(self._counter)}",
            type=type_,
            url=url,
            future=loop.create_future(),
            added_at=loop.time(),
            discover_by=discover_by,
            date_range=date_range,
        )
        self._pending.append(item)
        self._queue.put_nowait(item)
        logger.info("Queued %s scrape for %s (position %d)", type_, url, len(self._pending))

        self.start()
        return await item.future

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if item in self._pending:
                self._pending.remove(item)
            if item.future.done():
                # Caller went away (cancelled) or queue closed while waiting
                continue

            if self._last_call is not None:
                wait = self.min_interval - (loop.time() - self._last_call)
                if wait > 0:
                    logger.debug("Waiting %.2fs before next provider call", wait)
                    await asyncio.sleep(wait)

            if item.future.done():
                continue

            self._processing = True
            self._last_call = loop.time()
            logger.info(
                "Processing %s scrape for %s (waited %.1fs)",
                item.type, item.url, self._last_call - item.added_at,
            )
            try:
                result = await self._call(item)
            except Exception as e:
                logger.error("Provider %s scrape failed for %s: %s", item.type, item.url, e)
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._processing = False

            if self._pending:
                logger.debug("%d provider calls remaining in queue", len(self._pending))

    async def _call(self, item: _QueueItem) -> list[dict[str, Any]]:
        if item.type == "company":
            return await self.provider.scrape_company(item.url)
        if item.type == "profile":
            return await self.provider.scrape_profile(item.url)
        return await self.provider.scrape_posts(
            item.url,
            item.discover_by or DiscoveryMode.COMPANY_URL,
            item.date_range,
        )

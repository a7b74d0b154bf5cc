"""ScrapeProvider protocol: common interface for the third-party scraping service."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal, Protocol, TypedDict


class DiscoveryMode(StrEnum):
    COMPANY_URL = "company_url"
    PROFILE_URL = "profile_url"


class DateRange(TypedDict):
    start_date: str
    end_date: str


SnapshotState = Literal["ready", "processing", "error"]


@dataclass
class SnapshotStatus:
    """Result of polling a provider ticket."""

    status: SnapshotState
    data: list[dict[str, Any]] = field(default_factory=list)


class ScrapeProvider(Protocol):
    """Protocol for scraping providers.

    The three scrape operations return either the result objects directly, or a
    single-item list carrying a ``snapshot_id`` ticket to be polled through
    ``check_snapshot_status``.
    """

    async def scrape_company(self, url: str) -> list[dict[str, Any]]:
        ...

    async def scrape_profile(self, url: str) -> list[dict[str, Any]]:
        ...

    async def scrape_posts(
        self,
        url: str,
        discover_by: DiscoveryMode,
        date_range: DateRange | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def check_snapshot_status(self, snapshot_id: str) -> SnapshotStatus:
        ...

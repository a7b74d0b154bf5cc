"""BrightData LinkedIn scraper provider: company, profile and posts-discovery datasets."""

import json
import logging
import re
from typing import Any

import httpx

from rivalwatch.config import Settings, get_settings
from rivalwatch.constants import (
    BRIGHTDATA_PROGRESS_PATH,
    BRIGHTDATA_SCRAPE_PATH,
    BRIGHTDATA_SNAPSHOT_PATH,
    COMPANY_SCRAPE_TIMEOUT,
    POSTS_SCRAPE_TIMEOUT,
    PROFILE_SCRAPE_TIMEOUT,
    SNAPSHOT_STATUS_TIMEOUT,
)
from rivalwatch.http_client import get_http_client
from rivalwatch.providers.base import DateRange, DiscoveryMode, SnapshotStatus

logger = logging.getLogger(__name__)

_COMPANY_SLUG_RE = re.compile(r"linkedin\.com/company/([^/?]+)", re.IGNORECASE)
_PROFILE_SLUG_RE = re.compile(r"linkedin\.com/in/([^/?]+)", re.IGNORECASE)


class ProviderError(Exception):
    """Raised when a BrightData call fails (network, HTTP status, or config)."""


def extract_company_slug(url: str) -> str | None:
    """Extract the LinkedIn company slug from a URL, e.g. ``openai`` from ``/company/openai/``."""
    match = _COMPANY_SLUG_RE.search(url or "")
    return match.group(1) if match else None


def extract_profile_slug(url: str) -> str | None:
    """Extract the LinkedIn profile slug from a URL, e.g. ``jdoe`` from ``/in/jdoe``."""
    match = _PROFILE_SLUG_RE.search(url or "")
    return match.group(1) if match else None


def classify_discovery_mode(url: str) -> DiscoveryMode:
    """Pick the posts-discovery mode from the URL shape, defaulting to company pages."""
    if extract_company_slug(url):
        return DiscoveryMode.COMPANY_URL
    if extract_profile_slug(url):
        return DiscoveryMode.PROFILE_URL
    return DiscoveryMode.COMPANY_URL


def is_snapshot_ticket(item: Any) -> bool:
    """True if a result object is an async ticket rather than data."""
    return isinstance(item, dict) and isinstance(item.get("snapshot_id"), str)


def find_snapshot_ticket(results: list[dict[str, Any]]) -> str | None:
    """Return the ticket id when the provider answered with only tickets, else None."""
    if results and all(is_snapshot_ticket(item) for item in results):
        return results[0]["snapshot_id"]
    return None


def parse_ndjson(raw: str) -> list[dict[str, Any]]:
    """Parse newline-delimited JSON, skipping lines that are not valid objects."""
    items: list[dict[str, Any]] = []
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            parsed = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Failed to parse NDJSON line: %s", line[:100])
            continue
        if isinstance(parsed, list):
            items.extend(p for p in parsed if isinstance(p, dict))
        elif isinstance(parsed, dict):
            items.append(parsed)
    return items


class BrightDataClient:
    """Calls the BrightData datasets API over the shared httpx client."""

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    def _headers(self) -> dict[str, str]:
        if not self.settings.brightdata_api_key:
            raise ProviderError("BRIGHTDATA_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.settings.brightdata_api_key}",
            "Content-Type": "application/json",
        }

    async def _scrape(
        self,
        dataset_id: str,
        inputs: list[dict[str, str]],
        timeout: float,
        extra_params: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        params = {"dataset_id": dataset_id, "notify": "false", "include_errors": "true"}
        if extra_params:
            params.update(extra_params)

        try:
            resp = await self.client.post(
                f"{self.settings.brightdata_base_url}{BRIGHTDATA_SCRAPE_PATH}",
                params=params,
                json={"input": inputs},
                headers=self._headers(),
                timeout=timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "BrightData scrape failed (%s): %s", e.response.status_code, e.response.text[:500]
            )
            raise ProviderError(f"BrightData returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("BrightData scrape request error: %s", e)
            raise ProviderError(f"BrightData request failed: {e}") from e

        items = parse_ndjson(resp.text)
        logger.info("Parsed %d items from BrightData dataset %s", len(items), dataset_id)
        return items

    async def scrape_company(self, url: str) -> list[dict[str, Any]]:
        return await self._scrape(
            self.settings.brightdata_company_dataset_id,
            [{"url": url}],
            COMPANY_SCRAPE_TIMEOUT,
        )

    async def scrape_profile(self, url: str) -> list[dict[str, Any]]:
        return await self._scrape(
            self.settings.brightdata_profile_dataset_id,
            [{"url": url}],
            PROFILE_SCRAPE_TIMEOUT,
        )

    async def scrape_posts(
        self,
        url: str,
        discover_by: DiscoveryMode,
        date_range: DateRange | None = None,
    ) -> list[dict[str, Any]]:
        """Discover recent posts for a company page or personal profile.

        A date range is only honoured by the provider for profile discovery.
        """
        entry = {"url": url}
        if discover_by == DiscoveryMode.PROFILE_URL and date_range:
            entry.update(start_date=date_range["start_date"], end_date=date_range["end_date"])

        logger.info("Requesting posts discovery for %s (discover_by=%s)", url, discover_by)
        return await self._scrape(
            self.settings.brightdata_posts_dataset_id,
            [entry],
            POSTS_SCRAPE_TIMEOUT,
            {"type": "discover_new", "discover_by": str(discover_by)},
        )

    async def check_snapshot_status(self, snapshot_id: str) -> SnapshotStatus:
        """Poll a ticket; when ready, download its results."""
        base = self.settings.brightdata_base_url
        try:
            resp = await self.client.get(
                f"{base}{BRIGHTDATA_PROGRESS_PATH.format(snapshot_id=snapshot_id)}",
                headers=self._headers(),
                timeout=SNAPSHOT_STATUS_TIMEOUT,
            )
            resp.raise_for_status()
            state = resp.json().get("status")

            if state == "failed":
                return SnapshotStatus(status="error")
            if state != "ready":
                return SnapshotStatus(status="processing")

            data_resp = await self.client.get(
                f"{base}{BRIGHTDATA_SNAPSHOT_PATH.format(snapshot_id=snapshot_id)}",
                params={"format": "json"},
                headers=self._headers(),
                timeout=SNAPSHOT_STATUS_TIMEOUT,
            )
            data_resp.raise_for_status()
            payload = data_resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Snapshot status check failed for {snapshot_id}: {e}") from e

        if isinstance(payload, dict):
            payload = [payload]
        return SnapshotStatus(status="ready", data=[p for p in payload if isinstance(p, dict)])

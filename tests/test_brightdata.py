"""BrightData client tests using httpx.MockTransport."""

import json

import httpx
import pytest

from rivalwatch.config import Settings
from rivalwatch.providers.base import DiscoveryMode
from rivalwatch.providers.brightdata import (
    BrightDataClient,
    ProviderError,
    classify_discovery_mode,
    find_snapshot_ticket,
    parse_ndjson,
)


def _client(handler) -> BrightDataClient:
    settings = Settings(brightdata_api_key="test-key", brightdata_base_url="https://bd.test/")
    return BrightDataClient(settings, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.parametrize(
    "url, mode",
    [
        ("https://www.linkedin.com/company/globex/", DiscoveryMode.COMPANY_URL),
        ("https://linkedin.com/in/jane-doe", DiscoveryMode.PROFILE_URL),
        ("https://example.com/somewhere", DiscoveryMode.COMPANY_URL),
    ],
)
def test_classify_discovery_mode(url, mode):
    assert classify_discovery_mode(url) == mode


def test_parse_ndjson_skips_bad_lines():
    raw = '{"id": "1"}\nnot json\n\n[{"id": "2"}, 3]\n'
    assert parse_ndjson(raw) == [{"id": "1"}, {"id": "2"}]


def test_find_snapshot_ticket():
    assert find_snapshot_ticket([{"snapshot_id": "s_1"}]) == "s_1"
    assert find_snapshot_ticket([{"id": "1"}, {"snapshot_id": "s_1"}]) is None
    assert find_snapshot_ticket([]) is None


@pytest.mark.asyncio
async def test_scrape_posts_request_shape():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text='{"id": "1"}\n{"id": "2"}\n')

    client = _client(handler)
    posts = await client.scrape_posts(
        "https://linkedin.com/in/jane-doe",
        DiscoveryMode.PROFILE_URL,
        {"start_date": "2026-01-01", "end_date": "2026-02-01"},
    )

    assert [p["id"] for p in posts] == ["1", "2"]
    assert seen["url"].path == "/datasets/v3/scrape"
    assert seen["url"].params["type"] == "discover_new"
    assert seen["url"].params["discover_by"] == "profile_url"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["input"][0]["start_date"] == "2026-01-01"


@pytest.mark.asyncio
async def test_http_error_becomes_provider_error():
    client = _client(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ProviderError, match="502"):
        await client.scrape_company("https://www.linkedin.com/company/globex")


@pytest.mark.asyncio
async def test_missing_api_key_is_provider_error():
    client = BrightDataClient(Settings(brightdata_api_key=""), httpx.AsyncClient())
    with pytest.raises(ProviderError):
        await client.scrape_company("https://www.linkedin.com/company/globex")


@pytest.mark.asyncio
@pytest.mark.parametrize("state, expected", [("running", "processing"), ("failed", "error")])
async def test_snapshot_status_not_ready(state, expected):
    client = _client(lambda request: httpx.Response(200, json={"status": state}))
    status = await client.check_snapshot_status("s_1")
    assert status.status == expected
    assert status.data == []


@pytest.mark.asyncio
async def test_snapshot_status_ready_downloads_data():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/datasets/v3/progress/s_1":
            return httpx.Response(200, json={"status": "ready"})
        assert request.url.path == "/datasets/v3/snapshot/s_1"
        assert request.url.params["format"] == "json"
        return httpx.Response(200, json=[{"id": "9"}])

    status = await _client(handler).check_snapshot_status("s_1")

    assert status.status == "ready"
    assert status.data == [{"id": "9"}]

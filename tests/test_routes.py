"""HTTP trigger surface tests (FastAPI app over httpx ASGI transport)."""

import httpx
import pytest
import pytest_asyncio

from rivalwatch.app import create_app
from rivalwatch.db.session import get_db


@pytest_asyncio.fixture
async def client(session_factory, arq_redis):
    app = create_app()

    async def _db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _db
    app.state.arq_pool = arq_redis

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_trigger_scrape_and_poll_job(client, companies, arq_redis):
    resp = await client.post(f"/api/companies/{companies.company_id}/competitors/{companies.target_id}/scrape")

    assert resp.status_code == 202
    body = resp.json()
    assert body["created"] is True
    assert body["job"]["status"] == "pending"
    job_id = body["job"]["id"]
    assert arq_redis.named("scrape_posts_job")[0].args == (job_id,)

    again = await client.post(f"/api/companies/{companies.company_id}/competitors/{companies.target_id}/scrape")
    assert again.json()["created"] is False
    assert again.json()["job"]["id"] == job_id

    polled = await client.get(f"/api/scrape-jobs/{job_id}")
    assert polled.status_code == 200
    assert polled.json()["progress"] == 0

    listed = await client.get(f"/api/companies/{companies.company_id}/scrape-jobs", params={"status": "pending"})
    assert [j["id"] for j in listed.json()] == [job_id]


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    resp = await client.get("/api/scrape-jobs/nope")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_scrape_without_profile_url_is_404(client, companies):
    resp = await client.post(
        f"/api/companies/{companies.company_id}/competitors/{companies.target_id}/scrape",
        json={"platform": "Instagram"},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_sync_competitor_queues_profile_job(client, companies, arq_redis):
    resp = await client.post(
        f"/api/companies/{companies.company_id}/competitors/{companies.target_id}/sync",
        json={"name": "Globex", "url": companies.url, "type": "company"},
    )

    assert resp.status_code == 202
    assert resp.json()["queued"] is True
    [queued] = arq_redis.named("scrape_profile_job")
    assert queued.args[0]["competitor_id"] == companies.target_id

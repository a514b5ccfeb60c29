from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from consent_scanner.features.scanner.services.queue.polling_queue import PollingQueueService
from consent_scanner.main import app


@pytest.fixture
async def client(store):
    # worker stays off: jobs are only queued, never claimed
    app.state.queue_service = PollingQueueService(store, runner=MagicMock(), max_concurrent=1)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.state.queue_service = None


async def enqueue(client, url="example.com", **extra):
    return await client.post("/api/v1/scan-queue", json={"website_url": url, **extra})


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status_code"] == 200
    assert payload["status"] == "success"
    assert payload["message"] == "Service is healthy"
    assert payload["data"]["status"] == "ok"


@pytest.mark.asyncio
async def test_root_info(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["api_base"] == "/api/v1"


@pytest.mark.asyncio
async def test_enqueue_scan(client):
    response = await enqueue(client, priority=2)
    assert response.status_code == 201

    payload = response.json()
    data = payload["data"]
    assert payload["status"] == "success"
    assert data["status"] == "queued"
    assert data["position"] == 1
    assert data["progress"] == 0
    assert data["website_url"] == "https://example.com"
    assert data["estimated_wait_minutes"] == 1
    assert response.headers["location"] == f"/api/v1/scan-queue/{data['id']}"


@pytest.mark.asyncio
async def test_enqueue_rejects_url_without_host(client):
    response = await enqueue(client, url="https://")
    assert response.status_code == 400
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_enqueue_requires_website_url(client):
    response = await client.post("/api/v1/scan-queue", json={"priority": 1})
    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


@pytest.mark.asyncio
async def test_get_job_positions(client):
    first = (await enqueue(client, url="a.example")).json()["data"]
    second = (await enqueue(client, url="b.example")).json()["data"]
    urgent = (await enqueue(client, url="c.example", priority=10)).json()["data"]

    positions = {}
    for job in (first, second, urgent):
        response = await client.get(f"/api/v1/scan-queue/{job['id']}")
        assert response.status_code == 200
        positions[job["website_url"]] = response.json()["data"]["position"]

    assert positions == {
        "https://c.example": 1,
        "https://a.example": 2,
        "https://b.example": 3,
    }


@pytest.mark.asyncio
async def test_get_unknown_job(client):
    response = await client.get("/api/v1/scan-queue/missing")
    assert response.status_code == 404
    assert response.json()["message"] == "Scan job not found"


@pytest.mark.asyncio
async def test_cancel_job(client):
    job_id = (await enqueue(client)).json()["data"]["id"]

    response = await client.delete(f"/api/v1/scan-queue/{job_id}")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"
    assert response.json()["data"]["position"] is None

    again = await client.delete(f"/api/v1/scan-queue/{job_id}")
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_cancel_unknown_job(client):
    response = await client.delete("/api/v1/scan-queue/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_queue_stats(client):
    await enqueue(client, url="a.example")
    job_id = (await enqueue(client, url="b.example")).json()["data"]["id"]
    await client.delete(f"/api/v1/scan-queue/{job_id}")

    response = await client.get("/api/v1/scan-queue/stats")
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["queued"] == 1
    assert data["cancelled"] == 1
    assert data["max_concurrent"] == 1


@pytest.mark.asyncio
async def test_queue_unavailable_without_service(client):
    app.state.queue_service = None

    response = await client.get("/api/v1/scan-queue/stats")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_broker_outage_returns_503(client):
    from kombu.exceptions import OperationalError

    broken = MagicMock()
    broken.add_job = AsyncMock(side_effect=OperationalError("connection refused"))
    app.state.queue_service = broken

    response = await enqueue(client)
    assert response.status_code == 503

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest

from reconciliation.identity.store import InMemoryContactStore, get_store_provider
from reconciliation.kernel.errors import StoreError

pytestmark = [pytest.mark.api, pytest.mark.asyncio]


async def test_health(async_client):
    response = await async_client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["service"] == "identity-reconciliation"
    assert payload["uptime_seconds"] >= 0


async def test_live(async_client):
    response = await async_client.get("/live")

    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


async def test_ready_with_working_store(async_client):
    response = await async_client.get("/ready")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["checks"] == {"contact_store": True}
    assert payload["backend"] == "memory"


async def test_ready_reports_degraded_store(app, async_client):
    class DownStore(InMemoryContactStore):
        async def ping(self) -> None:
            raise StoreError()

    @asynccontextmanager
    async def provide_down():
        yield DownStore()

    app.dependency_overrides[get_store_provider] = lambda: provide_down

    response = await async_client.get("/ready")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"] == {"contact_store": False}


async def test_metrics_endpoint_exposes_identify_counter(async_client):
    await async_client.post("/identify", json={"email": "metrics@x.com"})

    response = await async_client.get("/metrics/")

    assert response.status_code == 200
    assert "reconciliation_identify_requests_total" in response.text

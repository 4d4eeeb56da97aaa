import pytest
from httpx import ASGITransport, AsyncClient

from rewards_api.api.dependencies.storage import get_evidence_storage
from rewards_api.core.settings import Settings
from rewards_api.services.storage import EvidenceStorage


@pytest.mark.asyncio
async def test_healthz_reports_ok(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        root = await client.get("/healthz")
        versioned = await client.get("/api/v1/healthz")

    assert root.status_code == 200
    assert root.json()["status"] == "ok"
    assert versioned.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readyz_reports_component_statuses(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["evidence_storage"]["status"] == "ready"


@pytest.mark.asyncio
async def test_readyz_degrades_when_bucket_unreachable(app_with_db, fake_s3) -> None:
    app, _ = app_with_db
    fake_s3.fail_head_bucket = True

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "degraded"
    storage_component = payload["components"]["evidence_storage"]
    assert storage_component["status"] == "error"
    assert "403" in storage_component["detail"]
    assert storage_component["last_error_at"] is not None


@pytest.mark.asyncio
async def test_readyz_marks_unconfigured_bucket_disabled(app_with_db) -> None:
    app, _ = app_with_db
    app.dependency_overrides[get_evidence_storage] = lambda: EvidenceStorage(
        settings=Settings(spotlight_evidence_bucket=None)
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["components"]["evidence_storage"]["status"] == "disabled"
    assert payload["status"] == "degraded"

from __future__ import annotations

import pytest

from fixtures.api_harness import ApiHarness
from kvr_api.adapters.routers.health_router import probe_provider


class _DownProbe:
    async def db(self) -> tuple[bool, str | None]:
        return False, "OperationalError"


@pytest.mark.anyio
async def test_health_reports_database_and_auth_mode(api: ApiHarness) -> None:
    r = await api.client.get("/api/v1/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["service"] == api.settings.service_name
    assert body["authMode"] == api.settings.auth_mode_description()


@pytest.mark.anyio
async def test_health_and_readiness_fail_without_database(api: ApiHarness) -> None:
    api.app.dependency_overrides[probe_provider] = _DownProbe

    health = await api.client.get("/api/v1/health")
    ready = await api.client.get("/api/v1/health/ready")
    live = await api.client.get("/api/v1/health/live")

    assert health.status_code == 503
    assert health.json()["database"] == "disconnected"
    assert ready.status_code == 503
    assert ready.json() == {"ready": False, "error": "OperationalError"}
    assert live.json() == {"live": True}


@pytest.mark.anyio
async def test_feature_manifest_is_public(api: ApiHarness) -> None:
    r = await api.client.get("/api/v1/app-features/manifest")

    assert r.status_code == 200
    manifest = r.json()
    assert manifest["appId"] == "kvr"
    ids = [f["id"] for f in manifest["features"]]
    assert "kvr.apikeys" in ids
    assert manifest["stats"]["totalFeatures"] == len(ids)
    assert sum(m["featureCount"] for m in manifest["modules"]) == len(ids)


@pytest.mark.anyio
async def test_feature_list_requires_authentication(api: ApiHarness) -> None:
    r = await api.client.get("/api/v1/app-features")

    assert r.status_code == 401


@pytest.mark.anyio
async def test_metrics_expose_auth_counters(api: ApiHarness) -> None:
    await api.client.get("/api/v1/protected/ping")

    r = await api.client.get("/metrics")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "kvr_auth_attempts_total" in r.text
    assert "readyz_db_latency_seconds" in r.text


@pytest.mark.anyio
async def test_request_id_is_echoed(api: ApiHarness) -> None:
    r = await api.client.get("/api/v1/health/live", headers={"X-Request-ID": "req-12345678"})

    assert r.headers["X-Request-ID"] == "req-12345678"

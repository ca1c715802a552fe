import pytest

from app.domain.chat.models import ROOMS_COLLECTION
from app.settings import settings


@pytest.mark.asyncio
async def test_ops_endpoints_fail_closed_without_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", None)
    response = await api_client.post("/ops/chat/repair", headers={"X-Admin-Token": "whatever"})
    assert response.status_code == 403
    assert response.json()["detail"] == "admin_token_not_configured"


@pytest.mark.asyncio
async def test_ops_endpoints_reject_wrong_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "secret-token")
    response = await api_client.post("/ops/chat/repair", headers={"X-Admin-Token": "wrong"})
    assert response.status_code == 403
    assert response.json()["detail"] == "forbidden"


@pytest.mark.asyncio
async def test_chat_repair_endpoint_defaults_to_dry_run(api_client, store, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "secret-token")
    await store.set(ROOMS_COLLECTION, "legacy", {"participants": [], "buyerId": "u1", "sellerId": "u2"})
    response = await api_client.post("/ops/chat/repair", headers={"X-Admin-Token": "secret-token"})
    assert response.status_code == 200
    body = response.json()
    assert body["dry_run"] is True
    assert body["fixed"] == 1
    assert (await store.get(ROOMS_COLLECTION, "legacy")).data["participants"] == []

    applied = await api_client.post(
        "/ops/chat/repair",
        params={"dry_run": "false"},
        headers={"Authorization": "Bearer secret-token"},
    )
    assert applied.status_code == 200
    assert (await store.get(ROOMS_COLLECTION, "legacy")).data["participants"] == ["u1", "u2"]


@pytest.mark.asyncio
async def test_metrics_require_admin_unless_public(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "secret-token")
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    assert (await api_client.get("/metrics")).status_code == 403
    response = await api_client.get("/metrics", headers={"X-Admin-Token": "secret-token"})
    assert response.status_code == 200
    assert "wastecycle_http_requests_total" in response.text


@pytest.mark.asyncio
async def test_health_live(api_client):
    response = await api_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

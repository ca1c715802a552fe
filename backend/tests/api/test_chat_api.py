import pytest

from app.domain.chat import notifications
from app.domain.chat.models import ROOMS_COLLECTION
from app.settings import settings

BUYER = {"X-User-Id": "buyer-uid-0001", "X-User-Name": "Anan"}
SELLER = {"X-User-Id": "seller-uid-0002"}
STRANGER = {"X-User-Id": "stranger-uid-0003"}
ADMIN = {"X-User-Id": "admin-uid-0004", "X-User-Roles": "admin"}


@pytest.mark.asyncio
async def test_chat_full_flow(api_client, store):
    await store.set("products", "p1", {"userId": "seller-uid-0002", "title": "Rice straw", "farmName": "Green Farm"})

    open_response = await api_client.post("/chat", json={"product_id": "p1"}, headers=BUYER)
    assert open_response.status_code == 200
    room = open_response.json()
    assert room["scope_id"] == "p1"
    assert room["other_participant_id"] == "seller-uid-0002"
    assert room["other_participant_name"] == "Green Farm"
    room_id = room["id"]

    again = await api_client.post("/chat", json={"peer_id": "buyer-uid-0001", "product_id": "p1"}, headers=SELLER)
    assert again.status_code == 200
    assert again.json()["id"] == room_id

    post_response = await api_client.post(f"/chat/{room_id}/messages", json={"text": "สนใจครับ"}, headers=BUYER)
    assert post_response.status_code == 201
    message = post_response.json()
    assert message["sender_id"] == "buyer-uid-0001"
    assert message["receiver_id"] == "seller-uid-0002"
    await notifications.drain()

    listing = await api_client.get("/chat", headers=SELLER)
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert [item["id"] for item in items] == [room_id]
    assert items[0]["last_message_text"] == "สนใจครับ"
    assert items[0]["other_participant_name"] == "Anan"

    history = await api_client.get(f"/chat/{room_id}/messages", headers=SELLER)
    assert history.status_code == 200
    assert [m["text"] for m in history.json()["items"]] == ["สนใจครับ"]


@pytest.mark.asyncio
async def test_error_mapping(api_client, store):
    await store.set(ROOMS_COLLECTION, "r1", {"participants": ["buyer-uid-0001", "seller-uid-0002"]})

    denied = await api_client.get("/chat/r1", headers=STRANGER)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "not_participant"
    assert "request_id" in denied.json()

    missing = await api_client.get("/chat/nope/messages", headers=BUYER)
    assert missing.status_code == 404

    blank = await api_client.post("/chat/r1/messages", json={"text": "   "}, headers=BUYER)
    assert blank.status_code == 400
    assert blank.json()["detail"] == "empty_message"

    self_chat = await api_client.post("/chat", json={"peer_id": "buyer-uid-0001"}, headers=BUYER)
    assert self_chat.status_code == 400

    no_target = await api_client.post("/chat", json={}, headers=BUYER)
    assert no_target.status_code == 422

    unknown_product = await api_client.post("/chat", json={"product_id": "missing"}, headers=BUYER)
    assert unknown_product.status_code == 404


@pytest.mark.asyncio
async def test_token_shaped_caller_id_is_unauthorized(api_client):
    response = await api_client.get("/chat", headers={"X-User-Id": "a" * 150})
    assert response.status_code == 401
    assert response.json()["detail"] == "invalid_user_id"


@pytest.mark.asyncio
async def test_admin_delete(api_client, store):
    await store.set(ROOMS_COLLECTION, "r1", {"participants": ["buyer-uid-0001", "seller-uid-0002"]})
    forbidden = await api_client.delete("/chat/r1", headers=BUYER)
    assert forbidden.status_code == 403
    deleted = await api_client.delete("/chat/r1", headers=ADMIN)
    assert deleted.status_code == 204
    assert await store.get(ROOMS_COLLECTION, "r1") is None
    missing = await api_client.delete("/chat/r1", headers=ADMIN)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_chat_routes_are_rate_limited(api_client, monkeypatch):
    monkeypatch.setattr(settings, "chat_rate_limit_per_minute", 2)
    for _ in range(2):
        assert (await api_client.get("/chat", headers=BUYER)).status_code == 200
    limited = await api_client.get("/chat", headers=BUYER)
    assert limited.status_code == 429
    assert limited.headers.get("Retry-After")

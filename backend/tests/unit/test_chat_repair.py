from typing import Optional

import pytest

from app.domain.chat.models import MESSAGES_CHILD, ROOMS_COLLECTION
from app.maintenance.chat_repair import repair_chat_rooms

TOKEN_U2 = "eyJhbGciOiJIUzI1NiJ9." + ("a" * 120) + ".sig"
TOKEN_DEAD = "eyJhbGciOiJIUzI1NiJ9." + ("b" * 120) + ".sig"


class MapVerifier:
    async def verify_credential(self, token: str) -> Optional[str]:
        return {TOKEN_U2: "u2"}.get(token)


async def _seed(store):
    await store.set(ROOMS_COLLECTION, "clean", {"participants": ["u1", "u2"]})
    await store.set(ROOMS_COLLECTION, "token", {"participants": ["u1", TOKEN_U2]})
    await store.set(ROOMS_COLLECTION, "legacy", {"participants": [], "buyerId": "u3", "sellerId": "u4"})
    await store.set(ROOMS_COLLECTION, "dead", {"participants": ["u5", TOKEN_DEAD]})
    await store.append_child(ROOMS_COLLECTION, "dead", MESSAGES_CHILD, {"text": "x", "timestamp": "t"})


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing(store):
    await _seed(store)
    counts = await repair_chat_rooms(store, MapVerifier(), dry_run=True, delete_unrecoverable=True)
    assert counts == {"scanned": 4, "fixed": 2, "unrecoverable": 1, "deleted": 0, "errors": 0}
    token_room = await store.get(ROOMS_COLLECTION, "token")
    assert token_room.data["participants"] == ["u1", TOKEN_U2]
    assert await store.get(ROOMS_COLLECTION, "dead") is not None


@pytest.mark.asyncio
async def test_repair_writes_and_deletes_unrecoverable(store):
    await _seed(store)
    counts = await repair_chat_rooms(store, MapVerifier(), delete_unrecoverable=True)
    assert counts["fixed"] == 2
    assert counts["deleted"] == 1
    assert (await store.get(ROOMS_COLLECTION, "token")).data["participants"] == ["u1", "u2"]
    assert (await store.get(ROOMS_COLLECTION, "legacy")).data["participants"] == ["u3", "u4"]
    assert await store.get(ROOMS_COLLECTION, "dead") is None
    assert await store.list_children(ROOMS_COLLECTION, "dead", MESSAGES_CHILD, order_by="timestamp") == []


@pytest.mark.asyncio
async def test_repair_is_idempotent(store):
    await _seed(store)
    await repair_chat_rooms(store, MapVerifier())
    counts = await repair_chat_rooms(store, MapVerifier())
    assert counts["fixed"] == 0
    assert counts["unrecoverable"] == 1


@pytest.mark.asyncio
async def test_repair_keeps_names_with_their_members(store):
    await store.set(
        ROOMS_COLLECTION,
        "token",
        {"participants": [TOKEN_U2, "u1"], "participant_names": ["Buyer Two", "Farm One"]},
    )
    await repair_chat_rooms(store, MapVerifier())
    room = await store.get(ROOMS_COLLECTION, "token")
    assert room.data["participants"] == ["u1", "u2"]
    assert room.data["participant_names"] == ["Farm One", "Buyer Two"]

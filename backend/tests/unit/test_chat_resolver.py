import asyncio

import pytest

from app.domain.chat.exceptions import InvalidIdentifier, InvalidOperation
from app.domain.chat.keys import derive_key
from app.domain.chat.models import ROOMS_COLLECTION
from app.domain.chat.resolver import RoomContext, RoomResolver

TOKEN = "eyJhbGciOiJIUzI1NiJ9." + ("p" * 120) + ".sig"


@pytest.mark.asyncio
async def test_open_is_idempotent_in_either_order(store):
    resolver = RoomResolver(store)
    first = await resolver.find_or_create("u1", "u2")
    second = await resolver.find_or_create("u2", "u1")
    assert first.id == second.id == derive_key("u1", "u2")
    assert len(await store.query(ROOMS_COLLECTION)) == 1


@pytest.mark.asyncio
async def test_scopes_partition_conversations(store):
    resolver = RoomResolver(store)
    item1 = await resolver.find_or_create("u1", "u2", "item1")
    item2 = await resolver.find_or_create("u1", "u2", "item2")
    assert item1.id != item2.id
    assert set(item1.participants) == {"u1", "u2"}
    assert set(item2.participants) == {"u1", "u2"}
    assert item1.scope_id == "item1"
    again = await resolver.find_or_create("u2", "u1", "item1")
    assert again.id == item1.id


@pytest.mark.asyncio
async def test_rejects_self_conversation_and_invalid_ids(store):
    resolver = RoomResolver(store)
    with pytest.raises(InvalidOperation):
        await resolver.find_or_create("u1", "u1")
    with pytest.raises(InvalidIdentifier):
        await resolver.find_or_create("u1", TOKEN)
    with pytest.raises(InvalidIdentifier):
        await resolver.find_or_create("", "u2")
    assert await store.query(ROOMS_COLLECTION) == []


@pytest.mark.asyncio
async def test_new_record_shape(store):
    await store.set("users", "u2", {"name": "Somchai Farm"})
    resolver = RoomResolver(store)
    record = await resolver.find_or_create(
        "u1",
        "u2",
        "p1",
        context=RoomContext(scope_title="Rice husk", names={"u1": "Anan"}),
    )
    doc = await store.get(ROOMS_COLLECTION, record.id)
    assert doc.data["participants"] == ["u1", "u2"]
    assert doc.data["participant_names"] == ["Anan", "Somchai Farm"]
    assert doc.data["scope_id"] == "p1"
    assert doc.data["scope_title"] == "Rice husk"
    assert doc.data["buyer_id"] == "u1"
    assert doc.data["seller_id"] == "u2"
    assert doc.data["last_message_text"] == ""
    assert doc.data["created_at"] == doc.data["updated_at"]


@pytest.mark.asyncio
async def test_found_record_is_healed(store):
    key = derive_key("u1", "u2")
    await store.set(ROOMS_COLLECTION, "legacy-room", {"participants": ["u1", " u2", TOKEN, "u1"]})
    record = await RoomResolver(store).find_or_create("u1", "u2")
    assert record.id == "legacy-room"
    assert record.participants == ["u1", "u2"]
    stored = await store.get(ROOMS_COLLECTION, "legacy-room")
    assert stored.data["participants"] == ["u1", "u2"]
    assert await store.get(ROOMS_COLLECTION, key) is None


@pytest.mark.asyncio
async def test_scoped_search_does_not_fall_back_to_unscoped(store):
    resolver = RoomResolver(store)
    unscoped = await resolver.find_or_create("u1", "u2")
    scoped = await resolver.find_or_create("u1", "u2", "p1")
    assert scoped.id != unscoped.id


@pytest.mark.asyncio
async def test_key_recheck_restores_missing_members(store):
    key = derive_key("u1", "u2")
    await store.set(ROOMS_COLLECTION, key, {"participants": [TOKEN]})
    record = await RoomResolver(store).find_or_create("u2", "u1")
    assert record.id == key
    assert record.participants == ["u1", "u2"]
    stored = await store.get(ROOMS_COLLECTION, key)
    assert stored.data["participants"] == ["u1", "u2"]


@pytest.mark.asyncio
async def test_concurrent_first_contact_creates_one_record(store):
    resolver = RoomResolver(store)
    results = await asyncio.gather(*(resolver.find_or_create("u1", "u2", "p1") for _ in range(5)))
    assert {record.id for record in results} == {derive_key("u1", "u2", "p1")}
    assert len(await store.query(ROOMS_COLLECTION)) == 1

import pytest

from app.infra.documents import ARRAY_CONTAINS, EQ, DocumentNotFound, InMemoryDocumentStore


@pytest.mark.asyncio
async def test_query_filters_combine():
    store = InMemoryDocumentStore()
    await store.set("rooms", "a", {"participants": ["u1", "u2"], "scope_id": "p1"})
    await store.set("rooms", "b", {"participants": ["u1", "u3"], "scope_id": "p2"})
    await store.set("rooms", "c", {"participants": "u1"})
    docs = await store.query("rooms", [("participants", ARRAY_CONTAINS, "u1"), ("scope_id", EQ, "p1")])
    assert [doc.id for doc in docs] == ["a"]


@pytest.mark.asyncio
async def test_create_is_conditional():
    store = InMemoryDocumentStore()
    assert await store.create("rooms", "k", {"v": 1})
    assert not await store.create("rooms", "k", {"v": 2})
    assert (await store.get("rooms", "k")).data == {"v": 1}


@pytest.mark.asyncio
async def test_update_merges_and_requires_existing():
    store = InMemoryDocumentStore()
    await store.set("rooms", "k", {"a": 1, "b": 2})
    await store.update("rooms", "k", {"b": 3})
    assert (await store.get("rooms", "k")).data == {"a": 1, "b": 3}
    with pytest.raises(DocumentNotFound):
        await store.update("rooms", "missing", {"a": 1})


@pytest.mark.asyncio
async def test_returned_documents_are_copies():
    store = InMemoryDocumentStore()
    await store.set("rooms", "k", {"participants": ["u1"]})
    doc = await store.get("rooms", "k")
    doc.data["participants"].append("u2")
    assert (await store.get("rooms", "k")).data["participants"] == ["u1"]


@pytest.mark.asyncio
async def test_children_sorted_and_deleted():
    store = InMemoryDocumentStore()
    await store.append_child("rooms", "k", "messages", {"timestamp": "2024-01-02"})
    await store.append_child("rooms", "k", "messages", {"timestamp": "2024-01-01"})
    children = await store.list_children("rooms", "k", "messages", order_by="timestamp")
    assert [c.data["timestamp"] for c in children] == ["2024-01-01", "2024-01-02"]
    assert await store.delete_children("rooms", "k", "messages") == 2
    assert await store.list_children("rooms", "k", "messages", order_by="timestamp") == []

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from stampchat.core.errors import NotFoundError
from stampchat.services.document_store import Document, MemoryDocumentStore, sort_documents
from stampchat.services.firestore_store import FirestoreDocumentStore
from stampchat.services.redis_store import dumps, loads

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_subscribe_delivers_initial_then_full_snapshots():
    async def scenario():
        store = MemoryDocumentStore()
        await store.add("rooms/a/messages", {"text": "first", "createdAt": T0})
        snapshots = []
        sub = await store.subscribe(
            "rooms/a/messages", lambda docs: snapshots.append([d.data["text"] for d in docs]), order_by="createdAt"
        )
        await store.add("rooms/a/messages", {"text": "second", "createdAt": T0 + timedelta(seconds=1)})
        sub.unsubscribe()
        await store.add("rooms/a/messages", {"text": "third", "createdAt": T0 + timedelta(seconds=2)})
        return snapshots

    assert asyncio.run(scenario()) == [["first"], ["first", "second"]]


def test_snapshot_sorted_by_field_with_insertion_order_on_ties():
    async def scenario():
        store = MemoryDocumentStore()
        await store.add("c", {"n": "late", "createdAt": T0 + timedelta(seconds=5)})
        await store.add("c", {"n": "tie-1", "createdAt": T0})
        await store.add("c", {"n": "tie-2", "createdAt": T0})
        return [d.data["n"] for d in await store.list("c", order_by="createdAt")]

    assert asyncio.run(scenario()) == ["tie-1", "tie-2", "late"]


def test_update_missing_document_raises_not_found():
    async def scenario():
        store = MemoryDocumentStore()
        await store.update("rooms", "nope", {"name": "x"})

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


def test_update_merges_and_delete_is_idempotent():
    async def scenario():
        store = MemoryDocumentStore()
        await store.set("rooms", "abc", {"name": "Test", "extra": 1})
        await store.update("rooms", "abc", {"name": "Renamed"})
        merged = await store.get("rooms", "abc")
        await store.delete("rooms", "abc")
        await store.delete("rooms", "abc")
        return merged, await store.get("rooms", "abc")

    merged, gone = asyncio.run(scenario())
    assert merged == {"name": "Renamed", "extra": 1}
    assert gone is None


def test_get_returns_a_copy():
    async def scenario():
        store = MemoryDocumentStore()
        await store.set("c", "x", {"votes": [0, 0]})
        data = await store.get("c", "x")
        data["votes"][0] = 99
        return await store.get("c", "x")

    assert asyncio.run(scenario()) == {"votes": [0, 0]}


def test_failing_listener_does_not_break_writes():
    def boom(documents):
        raise RuntimeError("listener bug")

    async def scenario():
        store = MemoryDocumentStore()
        await store.subscribe("c", boom)
        return await store.add("c", {"a": 1})

    assert asyncio.run(scenario())


def test_sort_documents_puts_missing_field_first():
    docs = [Document("a", {"createdAt": T0}), Document("b", {})]
    assert [d.id for d in sort_documents(docs, "createdAt")] == ["b", "a"]


def test_redis_codec_keeps_datetimes():
    data = {"text": "hi", "createdAt": T0, "replyTo": None, "votes": [1, 2]}
    assert loads(dumps(data)) == data


class _ClosingClient:
    def __init__(self, coroutine=False):
        self.coroutine = coroutine
        self.closed = False

    def close(self):
        if not self.coroutine:
            self.closed = True
            return None

        async def close():
            self.closed = True

        return close()


def test_firestore_close_releases_both_clients():
    store = FirestoreDocumentStore.__new__(FirestoreDocumentStore)
    store.client = _ClosingClient(coroutine=True)
    store.watch_client = _ClosingClient()

    asyncio.run(store.close())
    assert store.client.closed
    assert store.watch_client.closed

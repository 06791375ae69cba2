import pytest
from fastapi.testclient import TestClient

from stampchat.core import state
from stampchat.core.errors import StorageError
from stampchat.services.document_store import MemoryDocumentStore
from stampchat.services.interactions import RoomInteractions
from stampchat.services.repository import EntityRepository


class ScriptedStore(MemoryDocumentStore):
    """
    Memory store that records every call and can be told to fail.

    `failures[op] = n` lets `op` succeed n more times, then raises
    StorageError on every later call.
    """

    def __init__(self):
        super().__init__()
        self.calls = []
        self.failures = {}

    def _enter(self, op):
        self.calls.append(op)
        if op in self.failures:
            if self.failures[op] <= 0:
                raise StorageError(f"{op} unavailable")
            self.failures[op] -= 1

    async def add(self, path, data):
        self._enter("add")
        return await super().add(path, data)

    async def set(self, path, doc_id, data):
        self._enter("set")
        return await super().set(path, doc_id, data)

    async def update(self, path, doc_id, data):
        self._enter("update")
        return await super().update(path, doc_id, data)

    async def delete(self, path, doc_id):
        self._enter("delete")
        return await super().delete(path, doc_id)

    async def get(self, path, doc_id):
        self._enter("get")
        return await super().get(path, doc_id)

    async def list(self, path, order_by=None):
        self._enter("list")
        return await super().list(path, order_by)


@pytest.fixture
def store():
    return ScriptedStore()


@pytest.fixture
def repository(store):
    return EntityRepository(store)


@pytest.fixture
def interactions(repository):
    return RoomInteractions(repository)


@pytest.fixture
def client(store):
    from stampchat.main import app

    state.configure(store)
    with TestClient(app) as c:
        yield c
    state.reset()

# stampchat/services/document_store.py

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from stampchat.core.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """One stored document: its key within the collection and its fields."""

    id: str
    data: dict


SnapshotCallback = Callable[[List[Document]], None]


def new_document_id() -> str:
    """Opaque 20-character id, same shape as the ids Firestore assigns."""
    return uuid.uuid4().hex[:20]


def sort_documents(documents: List[Document], order_by: Optional[str]) -> List[Document]:
    """
    Stable sort on one field; documents keep their incoming (insertion)
    order on ties. Documents missing the field sort first.
    """
    if not order_by:
        return list(documents)
    present = [d for d in documents if d.data.get(order_by) is not None]
    missing = [d for d in documents if d.data.get(order_by) is None]
    return missing + sorted(present, key=lambda d: d.data[order_by])


# ============================================================================
# SUBSCRIPTION HANDLE
# ============================================================================

class Subscription:
    """
    Handle for a live collection query.

    Backends push complete snapshots through `deliver`; once `unsubscribe`
    has been called, further snapshots are dropped even if the backend had
    already queued them.
    """

    def __init__(self, path: str, callback: SnapshotCallback) -> None:
        self.path = path
        self.callback = callback
        self.active = True
        self._on_unsubscribe: List[Callable[[], None]] = []

    def add_teardown(self, func: Callable[[], None]) -> None:
        self._on_unsubscribe.append(func)

    def deliver(self, documents: List[Document]) -> None:
        if not self.active:
            return
        try:
            self.callback(documents)
        except Exception:
            logger.exception("Snapshot listener for %s failed", self.path)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        for func in self._on_unsubscribe:
            func()
        self._on_unsubscribe.clear()
        logger.debug("Unsubscribed from %s", self.path)


# ============================================================================
# STORE CONTRACT
# ============================================================================

class DocumentStore(ABC):
    """
    Client contract of the hosted document store.

    Paths are slash separated collection paths ("rooms",
    "rooms/abc/messages"). One-shot calls are request/response;
    `subscribe` pushes the full current list of a collection on every
    change. Every backend failure surfaces as StorageError.
    """

    @abstractmethod
    async def add(self, path: str, data: dict) -> str:
        """Create a document with a store-assigned id and return the id."""

    @abstractmethod
    async def set(self, path: str, doc_id: str, data: dict) -> None:
        """Create or fully replace the document at an explicit key."""

    @abstractmethod
    async def update(self, path: str, doc_id: str, data: dict) -> None:
        """Merge fields into an existing document; NotFoundError if absent."""

    @abstractmethod
    async def delete(self, path: str, doc_id: str) -> None:
        """Remove a document. Removing a missing document is a no-op."""

    @abstractmethod
    async def get(self, path: str, doc_id: str) -> Optional[dict]:
        """One-shot read; None when the document does not exist."""

    @abstractmethod
    async def list(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        """One-shot read of a whole collection."""

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        """Start a live query. The initial snapshot is always delivered."""

    async def close(self) -> None:
        """Release client resources."""


# ============================================================================
# IN-MEMORY BACKEND
# ============================================================================

class MemoryDocumentStore(DocumentStore):
    """
    Process-local store used for local development and tests.

    Each call yields to the event loop once before touching data, the same
    suspension point a network round trip has, so read-then-write
    sequences from concurrent tasks interleave exactly as they would
    against the hosted store. Snapshots are delivered synchronously after
    each write.
    """

    def __init__(self) -> None:
        # path -> {doc_id: data}; dicts keep insertion order
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.subscriptions: Dict[str, List[tuple]] = {}

    async def _io(self) -> None:
        await asyncio.sleep(0)

    def _collection(self, path: str) -> Dict[str, dict]:
        return self.collections.setdefault(path, {})

    def _snapshot(self, path: str, order_by: Optional[str]) -> List[Document]:
        documents = [
            Document(doc_id, copy.deepcopy(data))
            for doc_id, data in self.collections.get(path, {}).items()
        ]
        return sort_documents(documents, order_by)

    def _notify(self, path: str) -> None:
        for subscription, order_by in list(self.subscriptions.get(path, [])):
            subscription.deliver(self._snapshot(path, order_by))

    async def add(self, path: str, data: dict) -> str:
        await self._io()
        doc_id = new_document_id()
        self._collection(path)[doc_id] = copy.deepcopy(data)
        self._notify(path)
        return doc_id

    async def set(self, path: str, doc_id: str, data: dict) -> None:
        await self._io()
        self._collection(path)[doc_id] = copy.deepcopy(data)
        self._notify(path)

    async def update(self, path: str, doc_id: str, data: dict) -> None:
        await self._io()
        collection = self._collection(path)
        if doc_id not in collection:
            raise NotFoundError(path, doc_id)
        collection[doc_id].update(copy.deepcopy(data))
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        await self._io()
        if self._collection(path).pop(doc_id, None) is not None:
            self._notify(path)

    async def get(self, path: str, doc_id: str) -> Optional[dict]:
        await self._io()
        data = self.collections.get(path, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def list(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        await self._io()
        return self._snapshot(path, order_by)

    async def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        await self._io()
        subscription = Subscription(path, callback)
        entry = (subscription, order_by)
        self.subscriptions.setdefault(path, []).append(entry)
        subscription.add_teardown(lambda: self.subscriptions[path].remove(entry))
        subscription.deliver(self._snapshot(path, order_by))
        return subscription

# stampchat/services/firestore_store.py

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore

from stampchat.core.errors import NotFoundError, StorageError
from stampchat.services.document_store import (
    Document,
    DocumentStore,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)

_STORE_ERRORS = (google_exceptions.GoogleAPICallError, google_exceptions.RetryError)


class FirestoreDocumentStore(DocumentStore):
    """
    Google Cloud Firestore backend.

    One-shot reads and writes go through the async client. Live queries use
    the sync client's `on_snapshot` watch, whose callbacks run on a
    background thread owned by the client library; each snapshot is
    scheduled back onto the event loop that created the subscription.

    Counters are written with plain updates, not transactions, so
    concurrent read-then-write increments can lose updates.
    """

    def __init__(self, project: str | None = None, database: str | None = None) -> None:
        kwargs = {}
        if project:
            kwargs["project"] = project
        if database:
            kwargs["database"] = database
        try:
            self.client = firestore.AsyncClient(**kwargs)
            self.watch_client = firestore.Client(**kwargs)
        except auth_exceptions.GoogleAuthError as e:
            raise StorageError(f"Firestore credentials unavailable: {e}") from e
        logger.info("✓ Firestore client ready (project=%s)", self.client.project)

    def _query(self, client, path: str, order_by: Optional[str]):
        query = client.collection(path)
        if order_by:
            query = query.order_by(order_by)
        return query

    async def add(self, path: str, data: dict) -> str:
        try:
            _, ref = await self.client.collection(path).add(data)
        except _STORE_ERRORS as e:
            raise StorageError(f"add to {path} failed: {e}") from e
        return ref.id

    async def set(self, path: str, doc_id: str, data: dict) -> None:
        try:
            await self.client.collection(path).document(doc_id).set(data)
        except _STORE_ERRORS as e:
            raise StorageError(f"set {path}/{doc_id} failed: {e}") from e

    async def update(self, path: str, doc_id: str, data: dict) -> None:
        try:
            await self.client.collection(path).document(doc_id).update(data)
        except google_exceptions.NotFound as e:
            raise NotFoundError(path, doc_id) from e
        except _STORE_ERRORS as e:
            raise StorageError(f"update {path}/{doc_id} failed: {e}") from e

    async def delete(self, path: str, doc_id: str) -> None:
        try:
            await self.client.collection(path).document(doc_id).delete()
        except _STORE_ERRORS as e:
            raise StorageError(f"delete {path}/{doc_id} failed: {e}") from e

    async def get(self, path: str, doc_id: str) -> Optional[dict]:
        try:
            snapshot = await self.client.collection(path).document(doc_id).get()
        except _STORE_ERRORS as e:
            raise StorageError(f"get {path}/{doc_id} failed: {e}") from e
        return snapshot.to_dict() if snapshot.exists else None

    async def list(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        documents: List[Document] = []
        try:
            async for snapshot in self._query(self.client, path, order_by).stream():
                documents.append(Document(snapshot.id, snapshot.to_dict()))
        except _STORE_ERRORS as e:
            raise StorageError(f"list {path} failed: {e}") from e
        return documents

    async def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        loop = asyncio.get_running_loop()
        subscription = Subscription(path, callback)

        def _on_snapshot(docs, changes, read_time):
            # Runs on the watch thread
            documents = [Document(d.id, d.to_dict()) for d in docs]
            loop.call_soon_threadsafe(subscription.deliver, documents)

        try:
            watch = self._query(self.watch_client, path, order_by).on_snapshot(_on_snapshot)
        except _STORE_ERRORS as e:
            raise StorageError(f"subscribe to {path} failed: {e}") from e

        subscription.add_teardown(watch.unsubscribe)
        logger.info("✓ Watching Firestore collection '%s'", path)
        return subscription

    async def close(self) -> None:
        try:
            self.watch_client.close()
        except Exception:
            logger.exception("Error closing Firestore watch client on shutdown.")
        try:
            # AsyncClient.close is a coroutine on current releases
            result = self.client.close()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error closing Firestore client on shutdown.")
        logger.info("Firestore clients closed")

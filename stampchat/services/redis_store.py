# stampchat/services/redis_store.py
import asyncio
import json
import logging
from datetime import datetime
from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from stampchat.core.errors import NotFoundError, StorageError
from stampchat.services.document_store import (
    Document,
    DocumentStore,
    SnapshotCallback,
    Subscription,
    new_document_id,
    sort_documents,
)

logger = logging.getLogger(__name__)


def _encode(value):
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Cannot store {type(value).__name__}")


def _decode(obj: dict):
    if set(obj) == {"$date"}:
        return datetime.fromisoformat(obj["$date"])
    return obj


def dumps(data: dict) -> str:
    return json.dumps(data, default=_encode)


def loads(raw: str) -> dict:
    return json.loads(raw, object_hook=_decode)


class RedisDocumentStore(DocumentStore):
    """
    Document store on top of Redis.

    Layout per collection path:
        {prefix}:docs:{path}     hash, doc_id -> JSON document
        {prefix}:order:{path}    sorted set, doc_id -> insertion sequence
        {prefix}:changes:{path}  pub/sub channel, published after every write

    Subscribers listen on the change channel and re-read the whole
    collection, so every delivery is a full snapshot. Updates are a plain
    read-merge-write; there is no WATCH/MULTI around them.
    """

    def __init__(self, host: str = "localhost", port: int = 6379, access_key: str = "", prefix: str = "stampchat"):
        self.host = host
        self.port = port
        self.access_key = access_key
        self.prefix = prefix
        self.client = None
        self._listeners: set = set()

    async def connect(self):
        """Establish async connection to Redis."""
        if self.access_key:
            url = f"rediss://:{self.access_key}@{self.host}:{self.port}"
        else:
            url = f"redis://{self.host}:{self.port}"
        self.client = redis.from_url(url, decode_responses=True)
        try:
            await self.client.ping()
        except RedisError as e:
            raise StorageError(f"Redis unreachable at {self.host}:{self.port}: {e}") from e
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    def _docs_key(self, path: str) -> str:
        return f"{self.prefix}:docs:{path}"

    def _order_key(self, path: str) -> str:
        return f"{self.prefix}:order:{path}"

    def _channel(self, path: str) -> str:
        return f"{self.prefix}:changes:{path}"

    async def _write(self, path: str, doc_id: str, data: dict, keep_position: bool) -> None:
        seq = await self.client.incr(f"{self.prefix}:seq")
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(self._docs_key(path), doc_id, dumps(data))
            pipe.zadd(self._order_key(path), {doc_id: seq}, nx=keep_position)
            pipe.publish(self._channel(path), doc_id)
            await pipe.execute()

    async def add(self, path: str, data: dict) -> str:
        doc_id = new_document_id()
        try:
            await self._write(path, doc_id, data, keep_position=False)
        except RedisError as e:
            raise StorageError(f"add to {path} failed: {e}") from e
        return doc_id

    async def set(self, path: str, doc_id: str, data: dict) -> None:
        try:
            await self._write(path, doc_id, data, keep_position=True)
        except RedisError as e:
            raise StorageError(f"set {path}/{doc_id} failed: {e}") from e

    async def update(self, path: str, doc_id: str, data: dict) -> None:
        try:
            raw = await self.client.hget(self._docs_key(path), doc_id)
            if raw is None:
                raise NotFoundError(path, doc_id)
            merged = loads(raw)
            merged.update(data)
            await self._write(path, doc_id, merged, keep_position=True)
        except RedisError as e:
            raise StorageError(f"update {path}/{doc_id} failed: {e}") from e

    async def delete(self, path: str, doc_id: str) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hdel(self._docs_key(path), doc_id)
                pipe.zrem(self._order_key(path), doc_id)
                pipe.publish(self._channel(path), doc_id)
                await pipe.execute()
        except RedisError as e:
            raise StorageError(f"delete {path}/{doc_id} failed: {e}") from e

    async def get(self, path: str, doc_id: str) -> Optional[dict]:
        try:
            raw = await self.client.hget(self._docs_key(path), doc_id)
        except RedisError as e:
            raise StorageError(f"get {path}/{doc_id} failed: {e}") from e
        return loads(raw) if raw is not None else None

    async def list(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        try:
            ids = await self.client.zrange(self._order_key(path), 0, -1)
            raws = await self.client.hmget(self._docs_key(path), ids) if ids else []
        except RedisError as e:
            raise StorageError(f"list {path} failed: {e}") from e
        documents = [
            Document(doc_id, loads(raw))
            for doc_id, raw in zip(ids, raws)
            if raw is not None
        ]
        return sort_documents(documents, order_by)

    async def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
    ) -> Subscription:
        subscription = Subscription(path, callback)
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(self._channel(path))
            initial = await self.list(path, order_by)
        except RedisError as e:
            await pubsub.aclose()
            raise StorageError(f"subscribe to {path} failed: {e}") from e

        logger.info(f"✓ Subscribed to Redis channel '{self._channel(path)}'")
        subscription.deliver(initial)

        task = asyncio.create_task(self._listen(pubsub, subscription, order_by))
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)
        subscription.add_teardown(task.cancel)
        return subscription

    async def _listen(self, pubsub, subscription: Subscription, order_by: Optional[str]):
        """Re-read the collection on every change notification."""
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    documents = await self.list(subscription.path, order_by)
                except StorageError as e:
                    logger.error(f"Snapshot refresh for {subscription.path} failed: {e}")
                    continue
                subscription.deliver(documents)
        except RedisError as e:
            logger.error(f"Redis listener for {subscription.path} stopped: {e}")
        finally:
            await pubsub.aclose()

    async def close(self):
        """Close connections."""
        for task in list(self._listeners):
            task.cancel()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")

# stampchat/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from stampchat.core.config import settings
from stampchat.services.connection_manager import ConnectionManager
from stampchat.services.document_store import DocumentStore, MemoryDocumentStore
from stampchat.services.games import GameService
from stampchat.services.interactions import RoomInteractions
from stampchat.services.live_view import LiveViewProjector
from stampchat.services.repository import EntityRepository

# Global singletons for app state, wired by configure()
store: Optional[DocumentStore] = None
repository: Optional[EntityRepository] = None
interactions: Optional[RoomInteractions] = None
games: Optional[GameService] = None
projector: Optional[LiveViewProjector] = None
connection_manager: Optional[ConnectionManager] = None

app_start_time: datetime = datetime.now(timezone.utc)


async def create_store() -> DocumentStore:
    """Build the backend named by STORE_BACKEND."""
    if settings.STORE_BACKEND == "memory":
        return MemoryDocumentStore()
    if settings.STORE_BACKEND == "redis":
        from stampchat.services.redis_store import RedisDocumentStore

        redis_store = RedisDocumentStore(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            access_key=settings.REDIS_ACCESS_KEY,
            prefix=settings.REDIS_KEY_PREFIX,
        )
        await redis_store.connect()
        return redis_store
    if settings.STORE_BACKEND == "firestore":
        from stampchat.services.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore(
            project=settings.FIRESTORE_PROJECT_ID or None,
            database=settings.FIRESTORE_DATABASE or None,
        )
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")


def configure(document_store: DocumentStore) -> None:
    """Wire every service on top of one document store."""
    global store, repository, interactions, games, projector, connection_manager

    store = document_store
    repository = EntityRepository(document_store)
    interactions = RoomInteractions(repository)
    games = GameService(repository)
    projector = LiveViewProjector(repository)
    connection_manager = ConnectionManager(repository=repository, projector=projector)


def reset() -> None:
    global store, repository, interactions, games, projector, connection_manager

    store = repository = interactions = games = projector = connection_manager = None

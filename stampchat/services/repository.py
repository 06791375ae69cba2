# stampchat/services/repository.py

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Type, TypeVar

from pydantic import ValidationError as ModelValidationError

from stampchat.models.models import Game, Message, Room, StoredModel, Vote
from stampchat.services.document_store import Document, DocumentStore, Subscription

logger = logging.getLogger(__name__)

ROOMS = "rooms"
GAMES = "games"
CREATED_AT = "createdAt"

M = TypeVar("M", bound=StoredModel)


def messages_path(room_id: str) -> str:
    return f"{ROOMS}/{room_id}/messages"


def votes_path(room_id: str) -> str:
    return f"{ROOMS}/{room_id}/votes"


# ============================================================================
# ENTITY REPOSITORY
# ============================================================================

class EntityRepository:
    """
    The only code that talks to the document store.

    Converts between stored documents and the pydantic models for rooms,
    messages, votes and games. Snapshot callbacks always receive the full,
    ordered list of models for the collection:

        rooms                    store order (insertion / document id)
        rooms/{id}/messages      createdAt ascending
        rooms/{id}/votes         createdAt ascending
        games                    store order

    A document that does not parse into its model is logged and left out
    of the result instead of failing the whole snapshot.

    Nothing here is atomic across calls: `get_vote` followed by
    `update_vote` races with other clients doing the same.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(model: Type[M], doc_id: str, data: dict) -> Optional[M]:
        try:
            return model.model_validate({**data, "id": doc_id})
        except ModelValidationError as e:
            logger.warning("Skipping malformed %s document %s: %s", model.__name__, doc_id, e)
            return None

    def _parse_all(self, model: Type[M], documents: List[Document]) -> List[M]:
        parsed = (self._parse(model, d.id, d.data) for d in documents)
        return [item for item in parsed if item is not None]

    async def _subscribe(
        self,
        model: Type[M],
        path: str,
        callback: Callable[[List[M]], None],
        order_by: Optional[str] = None,
    ) -> Subscription:
        return await self.store.subscribe(
            path,
            lambda documents: callback(self._parse_all(model, documents)),
            order_by=order_by,
        )

    # ------------------------------------------------------------------
    # rooms
    # ------------------------------------------------------------------

    async def put_room(self, room_id: str, name: str) -> Room:
        """Create or overwrite the room document; child collections are untouched."""
        await self.store.set(ROOMS, room_id, {"name": name})
        return Room(id=room_id, name=name)

    async def get_room(self, room_id: str) -> Optional[Room]:
        data = await self.store.get(ROOMS, room_id)
        return self._parse(Room, room_id, data) if data is not None else None

    async def list_rooms(self) -> List[Room]:
        return self._parse_all(Room, await self.store.list(ROOMS))

    async def delete_room(self, room_id: str) -> None:
        await self.store.delete(ROOMS, room_id)

    async def subscribe_rooms(self, callback: Callable[[List[Room]], None]) -> Subscription:
        return await self._subscribe(Room, ROOMS, callback)

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------

    async def add_message(self, room_id: str, data: dict) -> str:
        return await self.store.add(messages_path(room_id), data)

    async def get_message(self, room_id: str, message_id: str) -> Optional[Message]:
        data = await self.store.get(messages_path(room_id), message_id)
        return self._parse(Message, message_id, data) if data is not None else None

    async def list_messages(self, room_id: str) -> List[Message]:
        documents = await self.store.list(messages_path(room_id), order_by=CREATED_AT)
        return self._parse_all(Message, documents)

    async def list_message_ids(self, room_id: str) -> List[str]:
        """Every message document id, parseable or not, in no particular order."""
        return [d.id for d in await self.store.list(messages_path(room_id))]

    async def update_message(self, room_id: str, message_id: str, data: dict) -> None:
        await self.store.update(messages_path(room_id), message_id, data)

    async def delete_message(self, room_id: str, message_id: str) -> None:
        await self.store.delete(messages_path(room_id), message_id)

    async def subscribe_messages(
        self, room_id: str, callback: Callable[[List[Message]], None]
    ) -> Subscription:
        return await self._subscribe(Message, messages_path(room_id), callback, CREATED_AT)

    # ------------------------------------------------------------------
    # votes
    # ------------------------------------------------------------------

    async def add_vote(self, room_id: str, data: dict) -> str:
        return await self.store.add(votes_path(room_id), data)

    async def get_vote(self, room_id: str, vote_id: str) -> Optional[Vote]:
        data = await self.store.get(votes_path(room_id), vote_id)
        return self._parse(Vote, vote_id, data) if data is not None else None

    async def list_votes(self, room_id: str) -> List[Vote]:
        documents = await self.store.list(votes_path(room_id), order_by=CREATED_AT)
        return self._parse_all(Vote, documents)

    async def list_vote_ids(self, room_id: str) -> List[str]:
        return [d.id for d in await self.store.list(votes_path(room_id))]

    async def update_vote(self, room_id: str, vote_id: str, data: dict) -> None:
        await self.store.update(votes_path(room_id), vote_id, data)

    async def delete_vote(self, room_id: str, vote_id: str) -> None:
        await self.store.delete(votes_path(room_id), vote_id)

    async def subscribe_votes(
        self, room_id: str, callback: Callable[[List[Vote]], None]
    ) -> Subscription:
        return await self._subscribe(Vote, votes_path(room_id), callback, CREATED_AT)

    # ------------------------------------------------------------------
    # games
    # ------------------------------------------------------------------

    async def add_game(self, data: dict) -> str:
        return await self.store.add(GAMES, data)

    async def list_games(self) -> List[Game]:
        return self._parse_all(Game, await self.store.list(GAMES))

    async def delete_game(self, game_id: str) -> None:
        await self.store.delete(GAMES, game_id)

# stampchat/services/live_view.py

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from stampchat.models.models import Message, OptionTally, Room, Vote, VoteTally
from stampchat.services.document_store import Subscription
from stampchat.services.repository import EntityRepository

logger = logging.getLogger(__name__)

MESSAGES = "messages"
VOTES = "votes"
ROOMS = "rooms"

ViewListener = Callable[[str, "RoomView"], None]


# ============================================================================
# PURE DISPLAY TRANSFORMS
# ============================================================================

def display_messages(messages: List[Message]) -> List[Message]:
    """Most recent first. Storage order is never changed."""
    return list(reversed(messages))


def tally_vote(vote: Vote) -> VoteTally:
    """
    Derive the totals shown next to a poll.

    Percentages are rounded per option and are all 0 while nobody has
    voted yet.
    """
    total = sum(vote.votes)
    options = [
        OptionTally(
            label=label,
            count=count,
            percent=round(count / total * 100) if total > 0 else 0,
        )
        for label, count in zip(vote.options, vote.votes)
    ]
    return VoteTally(
        id=vote.id,
        question=vote.question,
        created_at=vote.created_at,
        total=total,
        options=options,
    )


# ============================================================================
# ROOM VIEW
# ============================================================================

class RoomView:
    """
    Live messages and votes of one room.

    Each collection is held as the last snapshot delivered by the store,
    replaced wholesale on every delivery. Listeners are called after each
    replacement with the name of the collection that changed.

    The view owns two store subscriptions; `close()` must be called when
    nobody renders the room any more, otherwise the store keeps streaming.
    """

    def __init__(self, repository: EntityRepository, room_id: str) -> None:
        self.repository = repository
        self.room_id = room_id
        self.messages: List[Message] = []
        self.votes: List[Vote] = []
        self.listeners: List[ViewListener] = []
        self.subscriptions: List[Subscription] = []
        self.closed = False

    async def open(self) -> "RoomView":
        try:
            self.subscriptions.append(
                await self.repository.subscribe_messages(self.room_id, self._on_messages)
            )
            self.subscriptions.append(
                await self.repository.subscribe_votes(self.room_id, self._on_votes)
            )
        except Exception:
            self.close()
            raise
        logger.info("👀 Opened live view for room %s", self.room_id)
        return self

    def add_listener(self, listener: ViewListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: ViewListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _emit(self, kind: str) -> None:
        for listener in list(self.listeners):
            listener(kind, self)

    def _on_messages(self, messages: List[Message]) -> None:
        self.messages = messages
        self._emit(MESSAGES)

    def _on_votes(self, votes: List[Vote]) -> None:
        self.votes = votes
        self._emit(VOTES)

    def display_messages(self) -> List[Message]:
        return display_messages(self.messages)

    def display_votes(self) -> List[VoteTally]:
        return [tally_vote(vote) for vote in self.votes]

    def find_message(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == message_id), None)

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions.clear()
        self.listeners.clear()
        if not self.closed:
            self.closed = True
            logger.info("Closed live view for room %s", self.room_id)


# ============================================================================
# ROOM LIST VIEW
# ============================================================================

class RoomListView:
    """Live list of every room, in store order."""

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository
        self.rooms: List[Room] = []
        self.listeners: List[Callable[[List[Room]], None]] = []
        self.subscription: Optional[Subscription] = None

    async def open(self) -> "RoomListView":
        self.subscription = await self.repository.subscribe_rooms(self._on_rooms)
        return self

    def add_listener(self, listener: Callable[[List[Room]], None]) -> None:
        self.listeners.append(listener)

    def _on_rooms(self, rooms: List[Room]) -> None:
        self.rooms = rooms
        for listener in list(self.listeners):
            listener(rooms)

    def close(self) -> None:
        if self.subscription is not None:
            self.subscription.unsubscribe()
            self.subscription = None
        self.listeners.clear()


# ============================================================================
# PROJECTOR
# ============================================================================

class LiveViewProjector:
    """
    Keeps at most one RoomView per room id.

    Callers pair `open_room` with `close_room`; the view is torn down when
    the last holder closes it.
    """

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository
        self.views: Dict[str, RoomView] = {}
        self.holders: Dict[str, int] = {}

    async def open_room(self, room_id: str) -> RoomView:
        view = self.views.get(room_id)
        if view is None:
            view = await RoomView(self.repository, room_id).open()
            # another task may have opened it while we were subscribing
            if room_id in self.views:
                view.close()
                view = self.views[room_id]
            else:
                self.views[room_id] = view
        self.holders[room_id] = self.holders.get(room_id, 0) + 1
        return view

    def close_room(self, room_id: str) -> None:
        if room_id not in self.views:
            return
        self.holders[room_id] -= 1
        if self.holders[room_id] <= 0:
            self.views.pop(room_id).close()
            del self.holders[room_id]

    def get(self, room_id: str) -> Optional[RoomView]:
        return self.views.get(room_id)

    def close_all(self) -> None:
        for view in self.views.values():
            view.close()
        self.views.clear()
        self.holders.clear()

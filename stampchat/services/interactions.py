# stampchat/services/interactions.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from stampchat.core.errors import (
    NotFoundError,
    PartialDeleteError,
    StorageError,
    ValidationError,
)
from stampchat.core.validation import require_text, validate_room_id
from stampchat.models.models import Room, Vote
from stampchat.services.repository import EntityRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# CLIENT-LOCAL COMPOSER STATE
# ============================================================================

@dataclass
class Composer:
    """
    What one client is typing in one room.

    Never stored. `send_message` clears `text` and `reply_to` only after
    the store accepted the message.
    """

    username: str = ""
    text: str = ""
    reply_to: Optional[str] = None

    def set_reply_target(self, message_id: str) -> None:
        self.reply_to = message_id

    def clear_reply_target(self) -> None:
        self.reply_to = None


# ============================================================================
# INTERACTION HANDLERS
# ============================================================================

class RoomInteractions:
    """
    User actions against rooms, messages and votes.

    Each handler checks its preconditions (raising ValidationError before
    any store call), then performs a single store operation or a short
    read-modify-write. StorageError is left to the caller, which logs it
    and abandons the action; nothing is retried.

    Counter updates (vote tallies, likes) are read-then-write without a
    compare-and-swap, so two clients incrementing at the same time can
    lose one increment. That race is known and accepted.
    """

    def __init__(self, repository: EntityRepository) -> None:
        self.repository = repository

    # ------------------------------------------------------------------
    # rooms
    # ------------------------------------------------------------------

    async def create_room(self, raw_id: str, name: str) -> Room:
        """
        Claim a room id. An existing room with the same id keeps its
        messages and votes but gets the new name (last writer wins).
        """
        room_id = validate_room_id(raw_id)
        require_text("name", name, "Room name")

        existing = await self.repository.get_room(room_id)
        room = await self.repository.put_room(room_id, name)
        if existing is not None:
            logger.warning("Room %s overwritten: %r -> %r", room_id, existing.name, name)
        else:
            logger.info("✓ Created room: %s (%s)", name, room_id)
        return room

    async def delete_room(self, room_id: str, confirmed: bool = False) -> dict:
        """
        Delete every message, then every vote, then the room itself.

        Not transactional. If the store fails after something was
        deleted, PartialDeleteError reports what was removed; if it fails
        before, the plain StorageError is raised.
        """
        if not room_id:
            raise ValidationError("room_id", "empty", "Room ID is required")
        if not confirmed:
            raise ValidationError("confirm", "unconfirmed", "Room deletion must be confirmed")

        deleted = {"messages": 0, "votes": 0, "room": 0}
        try:
            # raw ids, so malformed children are removed too
            for message_id in await self.repository.list_message_ids(room_id):
                await self.repository.delete_message(room_id, message_id)
                deleted["messages"] += 1
            for vote_id in await self.repository.list_vote_ids(room_id):
                await self.repository.delete_vote(room_id, vote_id)
                deleted["votes"] += 1
            await self.repository.delete_room(room_id)
            deleted["room"] = 1
        except StorageError as e:
            if any(deleted.values()):
                raise PartialDeleteError(room_id, deleted, e) from e
            raise

        logger.info(
            "✓ Deleted room %s (%d messages, %d votes)",
            room_id, deleted["messages"], deleted["votes"],
        )
        return deleted

    # ------------------------------------------------------------------
    # messages
    # ------------------------------------------------------------------

    async def send_message(self, room_id: str, composer: Composer) -> str:
        require_text("text", composer.text, "Message text")
        if not room_id:
            raise ValidationError("room_id", "empty", "Room ID is required")
        require_text("username", composer.username, "Display name")

        message_id = await self.repository.add_message(
            room_id,
            {
                "text": composer.text,
                "createdAt": utcnow(),
                "username": composer.username,
                "likes": 0,
                "replyTo": composer.reply_to,
            },
        )
        composer.text = ""
        composer.clear_reply_target()
        return message_id

    async def like_message(self, room_id: str, message_id: str, current_likes: int) -> Optional[int]:
        """
        Write `current_likes + 1` using the count the client already has.

        Returns the new count, or None if the message no longer exists.
        """
        likes = max(current_likes, 0) + 1
        try:
            await self.repository.update_message(room_id, message_id, {"likes": likes})
        except NotFoundError as e:
            logger.warning("Like ignored: %s", e)
            return None
        return likes

    # ------------------------------------------------------------------
    # votes
    # ------------------------------------------------------------------

    async def create_vote(self, room_id: str, question: str, options: List[str]) -> str:
        if not room_id:
            raise ValidationError("room_id", "empty", "Room ID is required")
        require_text("question", question, "Question")
        if len(options) < 2:
            raise ValidationError("options", "too_few", "A vote needs at least two options")
        for option in options:
            require_text("options", option, "Every option")

        vote_id = await self.repository.add_vote(
            room_id,
            {
                "question": question,
                "options": list(options),
                "createdAt": utcnow(),
                "votes": [0] * len(options),
            },
        )
        logger.info("🗳 Created vote %s in room %s", vote_id, room_id)
        return vote_id

    async def cast_vote(self, room_id: str, vote_id: str, option_index: int) -> Optional[Vote]:
        """
        Read the poll, add one to the chosen option, write the tallies back.

        Two voters reading before either writes both write the same
        tallies, so one vote is lost.
        """
        if not room_id:
            raise ValidationError("room_id", "empty", "Room ID is required")
        if not vote_id:
            raise ValidationError("vote_id", "empty", "Vote ID is required")

        vote = await self.repository.get_vote(room_id, vote_id)
        if vote is None:
            logger.warning("Vote %s not found in room %s", vote_id, room_id)
            return None
        if not 0 <= option_index < len(vote.options):
            raise ValidationError("option_index", "out_of_range", "No such option")

        tallies = list(vote.votes)
        tallies[option_index] += 1
        try:
            await self.repository.update_vote(room_id, vote_id, {"votes": tallies})
        except NotFoundError as e:
            logger.warning("Vote vanished before update: %s", e)
            return None
        return vote.model_copy(update={"votes": tallies})

    async def delete_vote(self, room_id: str, vote_id: str) -> None:
        if not room_id or not vote_id:
            raise ValidationError("vote_id", "empty", "Room ID and vote ID are required")
        await self.repository.delete_vote(room_id, vote_id)
        logger.info("Deleted vote %s in room %s", vote_id, room_id)

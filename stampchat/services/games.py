# stampchat/services/games.py

from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional

from stampchat.core.errors import ValidationError
from stampchat.core.validation import require_text
from stampchat.models.models import Game, Participant
from stampchat.services.repository import EntityRepository

logger = logging.getLogger(__name__)

MIN_PLAYERS = 4
MAX_PLAYERS = 10

# Role deck per table size; one card per player. Role names match what the
# web client's roulette page writes to `games`.
WEREWOLF = "人狼"
NEET = "ニート"
KNIGHT = "騎士"
SEER = "占い師"
GM = "GM"
MADMAN = "狂人"
TERUTERU = "てるてる"
FOX = "妖狐"

ROLE_TABLES: Dict[int, List[str]] = {
    4: [WEREWOLF, NEET, NEET, GM],
    5: [WEREWOLF, NEET, NEET, KNIGHT, GM],
    6: [WEREWOLF, NEET, KNIGHT, SEER, GM, NEET],
    7: [WEREWOLF, NEET, KNIGHT, SEER, GM, MADMAN, NEET],
    8: [WEREWOLF, NEET, KNIGHT, SEER, GM, MADMAN, NEET, TERUTERU],
    9: [WEREWOLF, NEET, KNIGHT, SEER, GM, MADMAN, NEET, TERUTERU, FOX],
    10: [WEREWOLF, NEET, KNIGHT, SEER, GM, MADMAN, NEET, TERUTERU, FOX, NEET],
}


def assign_roles(names: List[str], rng: Optional[random.Random] = None) -> List[Participant]:
    """Deal a shuffled role deck to the non-blank names, in input order."""
    players = [name.strip() for name in names if name and name.strip()]
    if not MIN_PLAYERS <= len(players) <= MAX_PLAYERS:
        raise ValidationError(
            "participants",
            "player_count",
            f"A game needs {MIN_PLAYERS} to {MAX_PLAYERS} participants",
        )
    deck = list(ROLE_TABLES[len(players)])
    (rng or random).shuffle(deck)
    return [Participant(name=name, role=role) for name, role in zip(players, deck)]


class GameService:
    """Party-game tables stored in the top-level "games" collection."""

    def __init__(self, repository: EntityRepository, rng: Optional[random.Random] = None) -> None:
        self.repository = repository
        self.rng = rng

    async def create_game(self, room_name: str, names: List[str]) -> Game:
        require_text("room_name", room_name, "Room name")
        participants = assign_roles(names, self.rng)
        data = {
            "roomName": room_name,
            "participants": [p.model_dump() for p in participants],
        }
        game_id = await self.repository.add_game(data)
        logger.info("🎲 Created game %s (%d players)", game_id, len(participants))
        return Game(id=game_id, room_name=room_name, participants=participants)

    async def list_games(self) -> List[Game]:
        return await self.repository.list_games()

    async def delete_game(self, game_id: str) -> None:
        await self.repository.delete_game(game_id)
        logger.info("Deleted game %s", game_id)

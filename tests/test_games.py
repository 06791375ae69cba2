import asyncio
import random
from collections import Counter

import pytest

from stampchat.core.errors import ValidationError
from stampchat.services.games import ROLE_TABLES, GameService, assign_roles


@pytest.mark.parametrize("count", range(4, 11))
def test_every_player_gets_a_role_from_the_table(count):
    names = [f"p{i}" for i in range(count)]
    participants = assign_roles(names, random.Random(count))
    assert [p.name for p in participants] == names
    assert Counter(p.role for p in participants) == Counter(ROLE_TABLES[count])


def test_blank_names_are_ignored():
    participants = assign_roles(["a", "", "b", "  ", "c", "d"], random.Random(1))
    assert [p.name for p in participants] == ["a", "b", "c", "d"]


@pytest.mark.parametrize("names", [["a", "b", "c"], [f"p{i}" for i in range(11)], ["a", "b", "c", ""]])
def test_player_count_is_enforced(names):
    with pytest.raises(ValidationError):
        assign_roles(names)


def test_game_service_stores_and_deletes(repository):
    service = GameService(repository, rng=random.Random(7))

    async def scenario():
        game = await service.create_game("friday", ["a", "b", "c", "d"])
        listed = await service.list_games()
        await service.delete_game(game.id)
        return game, listed, await service.list_games()

    game, listed, after = asyncio.run(scenario())
    assert listed == [game]
    assert game.room_name == "friday"
    assert after == []


def test_role_names_match_the_web_client():
    participants = assign_roles(["a", "b", "c", "d"], random.Random(3))
    assert sorted(p.role for p in participants) == sorted(["人狼", "ニート", "ニート", "GM"])

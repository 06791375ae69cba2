# stampchat/api/routes/games.py

from typing import List

from fastapi import APIRouter

from stampchat.core import state
from stampchat.models.models import CreateGameRequest, Game
from stampchat.api.routes.utils import store_errors

router = APIRouter()


@router.get("/games", response_model=List[Game])
async def list_games():
    with store_errors("list games"):
        return await state.games.list_games()


@router.post("/games", response_model=Game)
async def create_game(request: CreateGameRequest):
    """
    Create a party-game table and deal a role to every participant.

    Blank names are ignored; 4 to 10 participants are required.
    """
    with store_errors("create game"):
        return await state.games.create_game(request.room_name, request.participants)


@router.delete("/games/{game_id}")
async def delete_game(game_id: str):
    with store_errors("delete game"):
        await state.games.delete_game(game_id)
    return {"status": "deleted", "game_id": game_id}

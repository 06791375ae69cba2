# stampchat/api/routes/votes.py

from typing import List

from fastapi import APIRouter, HTTPException

from stampchat.core import state
from stampchat.core.validation import validate_room_id
from stampchat.models.models import CastVoteRequest, CreateVoteRequest, VoteTally
from stampchat.services.live_view import tally_vote
from stampchat.api.routes.utils import store_errors

router = APIRouter()

# ============================================================================
# VOTE ENDPOINTS
# ============================================================================

@router.get("/rooms/{room_id}/votes", response_model=List[VoteTally])
async def list_votes(room_id: str):
    """Polls of a room in creation order, with totals and percentages."""
    with store_errors("list votes"):
        room_id = validate_room_id(room_id)
        votes = await state.repository.list_votes(room_id)
    return [tally_vote(v) for v in votes]


@router.post("/rooms/{room_id}/votes")
async def create_vote(room_id: str, request: CreateVoteRequest):
    """
    Create a poll with every tally at zero.

    Raises:
        HTTPException: 400 on an empty question, fewer than two options
            or an empty option
    """
    with store_errors("create vote"):
        room_id = validate_room_id(room_id)
        vote_id = await state.interactions.create_vote(room_id, request.question, request.options)
    return {"status": "created", "room_id": room_id, "vote_id": vote_id}


@router.post("/rooms/{room_id}/votes/{vote_id}/cast", response_model=VoteTally)
async def cast_vote(room_id: str, vote_id: str, request: CastVoteRequest):
    """
    Add one to an option.

    Read-then-write: simultaneous voters on the same poll may lose a vote.
    """
    with store_errors("cast vote"):
        room_id = validate_room_id(room_id)
        vote = await state.interactions.cast_vote(room_id, vote_id, request.option_index)
    if vote is None:
        raise HTTPException(status_code=404, detail="Vote not found")
    return tally_vote(vote)


@router.delete("/rooms/{room_id}/votes/{vote_id}")
async def delete_vote(room_id: str, vote_id: str):
    with store_errors("delete vote"):
        room_id = validate_room_id(room_id)
        await state.interactions.delete_vote(room_id, vote_id)
    return {"status": "deleted", "vote_id": vote_id}

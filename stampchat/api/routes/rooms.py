# stampchat/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, HTTPException

from stampchat.models.models import CreateRoomRequest, Room
from stampchat.core import state
from stampchat.core.validation import validate_room_id
from stampchat.api.routes.utils import store_errors

router = APIRouter()

# ============================================================================
# ROOM CRUD ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=List[Room])
async def list_rooms():
    """
    List all rooms in store order.

    Returns:
        List[Room]: id and name of every room
    """
    with store_errors("list rooms"):
        return await state.repository.list_rooms()


@router.post("/rooms", response_model=Room)
async def create_room(request: CreateRoomRequest):
    """
    Create a room under a user-chosen id.

    The id is validated (1-10 of letters, digits, "_", "." and "-") and
    lower-cased. Re-using an id renames the existing room and keeps its
    messages and votes.

    Raises:
        HTTPException: 400 if the id or name is invalid
    """
    with store_errors("create room"):
        return await state.interactions.create_room(request.id, request.name)


@router.get("/rooms/{room_id}", response_model=Room)
async def get_room(room_id: str):
    """
    Get a room by id.

    Raises:
        HTTPException: 404 if room not found
    """
    with store_errors("get room"):
        room = await state.repository.get_room(validate_room_id(room_id))
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@router.delete("/rooms/{room_id}")
async def delete_room(room_id: str, confirm: bool = False):
    """
    Delete a room with all its messages and votes.

    Needs `?confirm=true`. Deleting an id with no room document still
    clears any children left under it. Members currently in the room keep
    their connection and see empty snapshots afterwards.

    Returns:
        dict: Status and how many documents were removed

    Raises:
        HTTPException: 400 without confirmation, 500 if the cascade
            stopped midway
    """
    with store_errors("delete room"):
        room_id = validate_room_id(room_id)
        deleted = await state.interactions.delete_room(room_id, confirmed=confirm)

    return {"status": "deleted", "room_id": room_id, "deleted": deleted}

# stampchat/api/routes/messages.py

from typing import List

from fastapi import APIRouter, HTTPException

from stampchat.core import state
from stampchat.core.validation import validate_room_id
from stampchat.models.models import LikeMessageRequest, RenderedMessage, SendMessageRequest
from stampchat.services.interactions import Composer
from stampchat.services.live_view import display_messages
from stampchat.services.stamps import render
from stampchat.api.routes.utils import store_errors

router = APIRouter()

# ============================================================================
# MESSAGE ENDPOINTS
# ============================================================================

@router.get("/rooms/{room_id}/messages", response_model=List[RenderedMessage])
async def list_messages(room_id: str):
    """
    One-shot read of a room's messages, most recent first.

    Each message carries its rendered segments (stamps and escaped markup).
    """
    with store_errors("list messages"):
        room_id = validate_room_id(room_id)
        messages = await state.repository.list_messages(room_id)
    return [render(m) for m in display_messages(messages)]


@router.post("/rooms/{room_id}/messages")
async def send_message(room_id: str, request: SendMessageRequest):
    """
    Post a message to a room.

    Raises:
        HTTPException: 400 if text or username is empty, 503 if the store
            is unreachable (the client keeps its text and may resend)
    """
    composer = Composer(username=request.username, text=request.text, reply_to=request.reply_to)
    with store_errors("send message"):
        room_id = validate_room_id(room_id)
        message_id = await state.interactions.send_message(room_id, composer)
    return {"status": "sent", "room_id": room_id, "message_id": message_id}


@router.post("/rooms/{room_id}/messages/{message_id}/like")
async def like_message(room_id: str, message_id: str, request: LikeMessageRequest):
    """
    Like a message, writing the client's last known count plus one.

    Concurrent likes from different clients can overwrite each other.
    """
    with store_errors("like message"):
        room_id = validate_room_id(room_id)
        likes = await state.interactions.like_message(room_id, message_id, request.likes)
    if likes is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"status": "liked", "message_id": message_id, "likes": likes}

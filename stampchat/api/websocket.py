# stampchat/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from stampchat.core import state
from stampchat.core.errors import PartialDeleteError, StorageError, ValidationError
from stampchat.core.validation import validate_room_id
from stampchat.services.live_view import tally_vote

logger = logging.getLogger(__name__)

router = APIRouter()

ROOM_ACTIONS = {
    "join", "leave",
    "set_username", "draft", "set_reply", "clear_reply",
    "send_message", "like",
    "create_vote", "cast_vote", "delete_vote",
}

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, username: str = ""):
    """
    WebSocket endpoint for live rooms.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room:
        {"action": "join", "room_id": "abc", "username": "alice"}
        Response: {"type": "room_joined", "room": {...}, "member_count": 1,
                   "messages": [...], "votes": [...]}

    Leave Room:
        {"action": "leave", "room_id": "abc"}
        Response: {"type": "room_left", "room_id": "abc", "member_count": 0}

    List Rooms:
        {"action": "list_rooms"}
        Response: {"type": "rooms_list", "rooms": [...]}

    Composer state (never stored):
        {"action": "set_username", "room_id": "abc", "username": "alice"}
        {"action": "draft", "room_id": "abc", "text": "hello"}
        {"action": "set_reply", "room_id": "abc", "message_id": "..."}
        {"action": "clear_reply", "room_id": "abc"}
        Response: {"type": "composer", "room_id": "abc", "username": ..., "text": ..., "reply_to": ...}

    Send Message (uses the draft unless "text" is given):
        {"action": "send_message", "room_id": "abc", "text": "hi :stamp_3"}
        Response: {"type": "message_sent", "room_id": "abc", "message_id": "..."}

    Like:
        {"action": "like", "room_id": "abc", "message_id": "..."}
        Response: {"type": "message_liked", "message_id": "...", "likes": 2}

    Votes:
        {"action": "create_vote", "room_id": "abc", "question": "?", "options": ["a", "b"]}
        {"action": "cast_vote", "room_id": "abc", "vote_id": "...", "option_index": 0}
        {"action": "delete_vote", "room_id": "abc", "vote_id": "..."}

    Server -> Client Messages:
    -------------------------
    Messages changed (full list, most recent first):
        {"type": "messages_snapshot", "room_id": "abc", "messages": [...]}

    Votes changed (full list with tallies):
        {"type": "votes_snapshot", "room_id": "abc", "votes": [...]}

    Room list changed:
        {"type": "rooms_updated", "rooms": [...]}

    Error:
        {"type": "error", "message": "...", "field": "...", "action": "..."}

    Error Handling:
        - Invalid input: error frame, nothing written
        - Store failures: logged, error frame, action abandoned (no retry);
          the composer keeps the unsent text
        - Connection errors: cleanup and log
    """
    manager = state.connection_manager
    await manager.connect(websocket, username)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Invalid payload"})
                continue

            action = message.get("action")
            logger.info(f"Websocket input: Action: {action}")

            try:
                await handle_action(websocket, action, message)
            except ValidationError as e:
                await websocket.send_json(
                    {"type": "error", "action": action, "field": e.field, "reason": e.reason, "message": e.message}
                )
            except PartialDeleteError as e:
                logger.error("Action %s left orphans: %s", action, e)
                await websocket.send_json({"type": "error", "action": action, "message": str(e)})
            except StorageError as e:
                logger.error("Action %s failed: %s", action, e)
                await websocket.send_json(
                    {"type": "error", "action": action, "message": "Storage unavailable, please retry"}
                )

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        manager.disconnect(websocket)


def _composer_payload(room_id: str, composer) -> dict:
    return {
        "type": "composer",
        "room_id": room_id,
        "username": composer.username,
        "text": composer.text,
        "reply_to": composer.reply_to,
    }


def _text(message: dict, field: str) -> str:
    """A string field of the payload; missing or null reads as ""."""
    value = message.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(field, "not_a_string", f"{field} must be a string")
    return value


async def handle_action(websocket: WebSocket, action: str, message: dict) -> None:
    """Run one client action. Core errors propagate to the receive loop."""
    manager = state.connection_manager
    interactions = state.interactions

    if action == "list_rooms":
        rooms = await state.repository.list_rooms()
        await websocket.send_json({"type": "rooms_list", "rooms": [r.model_dump() for r in rooms]})
        return

    if not isinstance(action, str) or action not in ROOM_ACTIONS:
        await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})
        return

    room_id = validate_room_id(_text(message, "room_id"))

    if action == "join":
        await manager.join_room(websocket, room_id, _text(message, "username") or None)
        return

    if action == "leave":
        await manager.leave_room(websocket, room_id)
        return

    if action == "delete_vote":
        vote_id = _text(message, "vote_id")
        await interactions.delete_vote(room_id, vote_id)
        await websocket.send_json({"type": "vote_deleted", "room_id": room_id, "vote_id": vote_id})
        return

    if action == "create_vote":
        options = message.get("options")
        options = [str(o) for o in options] if isinstance(options, list) else []
        vote_id = await interactions.create_vote(room_id, _text(message, "question"), options)
        await websocket.send_json({"type": "vote_created", "room_id": room_id, "vote_id": vote_id})
        return

    if action == "cast_vote":
        option_index = message.get("option_index")
        if not isinstance(option_index, int):
            await websocket.send_json({"type": "error", "action": action, "message": "option_index must be an integer"})
            return
        vote = await interactions.cast_vote(room_id, _text(message, "vote_id"), option_index)
        if vote is None:
            await websocket.send_json({"type": "error", "action": action, "message": "Vote not found"})
            return
        await websocket.send_json(
            {"type": "vote_cast", "room_id": room_id, "vote": tally_vote(vote).model_dump(mode="json", by_alias=True)}
        )
        return

    # Everything below works on the connection's composer for a joined room
    composer = manager.composer(websocket, room_id)
    if composer is None:
        await websocket.send_json({"type": "error", "action": action, "message": "Join the room first"})
        return

    if action == "set_username":
        composer.username = _text(message, "username")
        await websocket.send_json(_composer_payload(room_id, composer))

    elif action == "draft":
        composer.text = _text(message, "text")
        await websocket.send_json(_composer_payload(room_id, composer))

    elif action == "set_reply":
        composer.set_reply_target(_text(message, "message_id"))
        await websocket.send_json(_composer_payload(room_id, composer))

    elif action == "clear_reply":
        composer.clear_reply_target()
        await websocket.send_json(_composer_payload(room_id, composer))

    elif action == "send_message":
        if "text" in message:
            composer.text = _text(message, "text")
        message_id = await interactions.send_message(room_id, composer)
        await websocket.send_json({"type": "message_sent", "room_id": room_id, "message_id": message_id})

    elif action == "like":
        message_id = _text(message, "message_id")
        view = manager.view(room_id)
        loaded = view.find_message(message_id) if view else None
        if loaded is None:
            await websocket.send_json({"type": "error", "action": action, "message": "Message not found"})
            return
        likes = await interactions.like_message(room_id, message_id, loaded.likes)
        if likes is None:
            await websocket.send_json({"type": "error", "action": action, "message": "Message not found"})
            return
        await websocket.send_json({"type": "message_liked", "room_id": room_id, "message_id": message_id, "likes": likes})

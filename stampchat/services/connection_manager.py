# stampchat/services/connection_manager.py

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set
from fastapi import WebSocket
import logging

from stampchat.core.validation import validate_room_id
from stampchat.models.models import Room
from stampchat.services.interactions import Composer
from stampchat.services.live_view import (
    MESSAGES,
    LiveViewProjector,
    RoomListView,
    RoomView,
)
from stampchat.services.repository import EntityRepository
from stampchat.services.stamps import render

logger = logging.getLogger(__name__)


def messages_payload(view: RoomView) -> List[dict]:
    return [render(m).model_dump(mode="json", by_alias=True) for m in view.display_messages()]


def votes_payload(view: RoomView) -> List[dict]:
    return [t.model_dump(mode="json", by_alias=True) for t in view.display_votes()]


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Manages WebSocket connections, room memberships and live room views.

    A room's live view (two store subscriptions) is opened when the first
    connection joins and closed when the last one leaves or disconnects, so
    the store only streams rooms somebody is looking at. Every snapshot the
    view receives is pushed to the room's members as a full list.

    Data Structures:
        rooms: Maps room_id -> Set of WebSocket connections in that room
        connection_rooms: Maps WebSocket -> Set of room_ids it has joined
        connection_users: Maps WebSocket -> display name given at connect
        composers: Maps WebSocket -> room_id -> Composer (draft, reply target)
    """

    def __init__(self, repository: EntityRepository, projector: LiveViewProjector) -> None:
        self.repository = repository
        self.projector = projector

        self.rooms: Dict[str, Set[WebSocket]] = {}
        self.connection_rooms: Dict[WebSocket, Set[str]] = {}
        self.connection_users: Dict[WebSocket, str] = {}
        self.composers: Dict[WebSocket, Dict[str, Composer]] = {}

        self.room_list: Optional[RoomListView] = None
        self._watched: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the rooms collection and fan changes out to everyone."""
        self.room_list = await RoomListView(self.repository).open()
        self.room_list.add_listener(self._on_rooms_changed)
        logger.info("✓ Watching room list (%d rooms)", len(self.room_list.rooms))

    def stop(self) -> None:
        if self.room_list is not None:
            self.room_list.close()
            self.room_list = None
        self.projector.close_all()
        self._watched.clear()
        for task in list(self._tasks):
            task.cancel()

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # connections
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket, username: str = "") -> None:
        """
        Accept a new WebSocket connection.

        The connection is not in any room until it sends "join".
        """
        await websocket.accept()

        self.connection_rooms[websocket] = set()
        self.connection_users[websocket] = username
        self.composers[websocket] = {}

        logger.info("✓ User %s connected. Total: %d", username or "anonymous", len(self.connection_rooms))

    def disconnect(self, websocket: WebSocket) -> None:
        """Drop the connection from every room; close views nobody watches any more."""
        if websocket in self.connection_rooms:
            username = self.connection_users.get(websocket) or "anonymous"

            for room_id in self.connection_rooms[websocket]:
                self._remove_member(websocket, room_id)

            del self.connection_rooms[websocket]
            del self.connection_users[websocket]
            self.composers.pop(websocket, None)

            logger.info("✗ User %s disconnected. Total: %d", username, len(self.connection_rooms))

    def _remove_member(self, websocket: WebSocket, room_id: str) -> int:
        members = self.rooms.get(room_id)
        if members is None or websocket not in members:
            return len(members or ())
        members.discard(websocket)
        self.projector.close_room(room_id)
        if self.projector.get(room_id) is None:
            self._watched.discard(room_id)
        if not members:
            del self.rooms[room_id]
        return len(members)

    # ------------------------------------------------------------------
    # rooms
    # ------------------------------------------------------------------

    async def join_room(self, websocket: WebSocket, raw_room_id: str, username: str | None = None) -> None:
        """
        Join a room and start receiving its snapshots.

        Raises ValidationError for a malformed id; replies with an error
        frame when the room does not exist.
        """
        room_id = validate_room_id(raw_room_id)
        room = await self.repository.get_room(room_id)
        if room is None:
            await websocket.send_json({"type": "error", "message": "Room not found", "room_id": room_id})
            return

        if websocket not in self.connection_rooms:
            return  # Connection already closed
        if room_id in self.connection_rooms[websocket]:
            await websocket.send_json(self._joined_payload(room, self.projector.get(room_id)))
            return

        view = await self.projector.open_room(room_id)
        if websocket not in self.connection_rooms:
            # disconnected while the view was opening
            self.projector.close_room(room_id)
            return
        if room_id not in self._watched:
            view.add_listener(self._on_view_changed)
            self._watched.add(room_id)

        self.rooms.setdefault(room_id, set()).add(websocket)
        self.connection_rooms[websocket].add(room_id)
        self.composers[websocket][room_id] = Composer(
            username=username if username is not None else self.connection_users.get(websocket, "")
        )

        logger.info("→ %s joined '%s' (%s members)",
                    self.connection_users.get(websocket) or "anonymous", room.name, len(self.rooms[room_id]))

        await websocket.send_json(self._joined_payload(room, view))

    async def leave_room(self, websocket: WebSocket, room_id: str) -> None:
        """Stop receiving a room's snapshots and forget the draft for it."""
        if websocket not in self.connection_rooms:
            return  # Connection already closed

        if room_id in self.connection_rooms[websocket]:
            self.connection_rooms[websocket].discard(room_id)
            self.composers[websocket].pop(room_id, None)
            member_count = self._remove_member(websocket, room_id)

            await websocket.send_json(
                {
                    "type": "room_left",
                    "room_id": room_id,
                    "member_count": member_count,
                }
            )

    def composer(self, websocket: WebSocket, room_id: str) -> Optional[Composer]:
        """The connection's composer for a joined room, None if not joined."""
        return self.composers.get(websocket, {}).get(room_id)

    def view(self, room_id: str) -> Optional[RoomView]:
        return self.projector.get(room_id)

    def _joined_payload(self, room: Room, view: Optional[RoomView]) -> dict:
        return {
            "type": "room_joined",
            "room": room.model_dump(),
            "member_count": len(self.rooms.get(room.id, ())),
            "messages": messages_payload(view) if view else [],
            "votes": votes_payload(view) if view else [],
        }

    # ------------------------------------------------------------------
    # fan-out
    # ------------------------------------------------------------------

    def _on_view_changed(self, kind: str, view: RoomView) -> None:
        if kind == MESSAGES:
            payload = {"type": "messages_snapshot", "room_id": view.room_id, "messages": messages_payload(view)}
        else:
            payload = {"type": "votes_snapshot", "room_id": view.room_id, "votes": votes_payload(view)}
        self._schedule(self.broadcast_to_room(view.room_id, payload))

    def _on_rooms_changed(self, rooms: List[Room]) -> None:
        payload = {"type": "rooms_updated", "rooms": [r.model_dump() for r in rooms]}
        self._schedule(self.broadcast_all(payload))

    async def broadcast_to_room(self, room_id: str, message: dict) -> None:
        """
        Send a message to every WebSocket in a room.

        Connections that fail to receive are disconnected.
        """
        if room_id not in self.rooms:
            logger.debug("[routing] Skipped broadcast: room=%s has 0 members", room_id)
            return

        await self._send_many(self.rooms[room_id].copy(), message)

    async def broadcast_all(self, message: dict) -> None:
        await self._send_many(list(self.connection_rooms.keys()), message)

    async def _send_many(self, connections, message: dict) -> None:
        disconnected = set()
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Send error: {e}")
                disconnected.add(connection)

        for conn in disconnected:
            self.disconnect(conn)

    def get_rooms_info(self) -> Dict[str, dict]:
        """Member counts for rooms that currently have members."""
        return {room_id: {"member_count": len(conns)} for room_id, conns in self.rooms.items()}

# stampchat/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from stampchat.core import state
from stampchat.core.config import settings

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current store backend, connection counts and how many rooms
    have a live view open. Used by container health probes.

    Returns:
        dict: Status, backend, connection count, live room count, uptime
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    manager = state.connection_manager
    return {
        "status": "healthy" if state.store is not None else "starting",
        "store_backend": settings.STORE_BACKEND,
        "connections": len(manager.connection_rooms) if manager else 0,
        "rooms": len(manager.room_list.rooms) if manager and manager.room_list else 0,
        "live_rooms": len(state.projector.views) if state.projector else 0,
        "uptime_hours": round(uptime_seconds / 3600, 2),
    }

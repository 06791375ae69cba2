# stampchat/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Stampchat - rooms, stamps and polls",
        "version": "1.0",
        "architecture": "hosted document store + live snapshot fan-out",
        "features": ["rooms", "messages", "stamps", "votes", "likes", "replies", "games"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "messages": "/rooms/{room_id}/messages",
            "votes": "/rooms/{room_id}/votes",
            "games": "/games",
            "health": "/health",
        },
    }

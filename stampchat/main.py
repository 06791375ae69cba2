# stampchat/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stampchat.core import state
from stampchat.core.config import settings
from stampchat.core.logging import setup_logging, get_logger
from stampchat.api.routes import root, health, rooms, messages, votes, games
from stampchat.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Stampchat")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(rooms.router)
app.include_router(messages.router)
app.include_router(votes.router)
app.include_router(games.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - store backend: %s", settings.STORE_BACKEND)

    # Tests (or an embedding app) may have wired a store already
    if state.store is None:
        state.configure(await state.create_store())

    await state.connection_manager.start()


@app.on_event("shutdown")
async def on_shutdown():
    if state.connection_manager is not None:
        state.connection_manager.stop()
    if state.store is not None:
        await state.store.close()
    logger.info("Application stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stampchat.main:app", host="0.0.0.0", port=8000)

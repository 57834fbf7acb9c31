# backend/ychat/main.py

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ychat.core.config import settings
from ychat.core.logging import setup_logging
from ychat.core.state import build_state
from ychat.api.routes import root, health, metrics, rooms, blobs
from ychat.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(title="YChat - Rooms")

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
app.include_router(metrics.router)
app.include_router(rooms.router)
app.include_router(blobs.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - message store: %s", settings.MESSAGE_STORE)

    chat = build_state(settings)
    # Raises if the store is unreachable; there is no degraded mode
    await chat.start()
    app.state.chat = chat


@app.on_event("shutdown")
async def on_shutdown():
    chat = getattr(app.state, "chat", None)
    if chat is not None:
        await chat.shutdown()
    logger.info("Application stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ychat.main:app", host="0.0.0.0", port=8000)

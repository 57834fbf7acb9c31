# backend/ychat/api/routes/health.py

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ychat.core.errors import PersistenceError
from ychat.core.state import ChatState, get_chat_state

router = APIRouter()


@router.get("/health")
async def health(chat: ChatState = Depends(get_chat_state)):
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.
    Responds 503 when the message store can not be reached.
    """
    try:
        await chat.store.ping()
        store_status = "ok"
    except PersistenceError:
        store_status = "unreachable"

    body = {
        "status": "healthy" if store_status == "ok" else "degraded",
        "store": store_status,
        "connections": len(chat.connection_manager.connections),
        "rooms": len(chat.room_manager.rooms),
        "active_rooms_with_members": len(chat.connection_manager.rooms),
    }
    return JSONResponse(body, status_code=200 if store_status == "ok" else 503)

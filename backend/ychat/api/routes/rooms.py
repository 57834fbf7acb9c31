# backend/ychat/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ychat.core.errors import PersistenceError
from ychat.core.state import ChatState, get_chat_state
from ychat.models.models import Room, RoomDetail

router = APIRouter()

# ============================================================================
# ROOM READ ENDPOINTS
# ============================================================================
# Rooms are created by joining them over the WebSocket; there is no
# create/delete over HTTP.

@router.get("/rooms", response_model=List[Room])
async def list_rooms(chat: ChatState = Depends(get_chat_state)):
    """
    List every room created since the process started.

    Returns:
        List[Room]: All rooms with their current member counts
    """
    return chat.room_manager.list_rooms()


@router.get("/rooms/{room_name}", response_model=RoomDetail)
async def get_room(room_name: str, chat: ChatState = Depends(get_chat_state)):
    """
    Get a room and its current members.

    Raises:
        HTTPException: 404 if nobody has ever joined the room
    """
    room = chat.room_manager.get_room(room_name)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetail(**room.model_dump(), members=chat.room_manager.members_of(room_name))


@router.get("/rooms/{room_name}/messages")
async def get_room_messages(room_name: str, chat: ChatState = Depends(get_chat_state)):
    """
    Message history of a room (last 24 hours, oldest first).

    An unknown room simply has no messages.

    Raises:
        HTTPException: 503 if the message store is unreachable
    """
    try:
        history = await chat.store.history(room_name)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)

    return [message.to_wire() for message in history]

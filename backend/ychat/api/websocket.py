# backend/ychat/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ychat.core.state import get_chat_state

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time room chat.

    Every frame, in both directions, is a JSON envelope:
        {"event": "<name>", "data": <payload>}

    Client -> Server Events:
    ------------------------
    joinRoom:
        {"roomName": "lobby", "username": "alice", "avatarRef": "...", "passkey": "..."}
        Reply:     joinedRoom {"roomName": "lobby", "messages": [...]}
                   or joinError {"message": "..."}
        Broadcast: usersList [{"username": "alice", "avatarRef": "..."}]

    chatMessage:
        {"roomName": "lobby", "user": "alice", "text": "hi", "imageRef": "..."}
        Broadcast: chatMessage {"_id", "roomName", "user", "text", "avatarRef",
                                "imageRef", "createdAt", "readBy"}
        Failure:   error {"message": "..."} to the sender only

    messageRead:
        {"messageId": "...", "roomName": "lobby", "username": "bob"}
        Broadcast: readReceipt {"messageId": "...", "readBy": ["alice", "bob"]}

    typing / stopTyping:
        {"roomName": "lobby", "username": "alice"}
        To everyone else in the room: userTyping / userStopTyping {"username": "alice"}

    Lifecycle:
    ==========
    1. Connection accepted in CONNECTED state
    2. joinRoom binds it to a room (JOINED); joining again moves it
    3. Events are processed one at a time per connection
    4. On disconnect the user is removed from its room and the room is told
    """
    chat = get_chat_state(websocket)
    await chat.connection_manager.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await chat.connection_manager.send(websocket, "error", {"message": "Invalid JSON"})
                continue

            if not isinstance(frame, dict):
                await chat.connection_manager.send(websocket, "error", {"message": "Invalid frame"})
                continue

            event = frame.get("event")
            logger.debug("Websocket input: event=%s", event)
            await chat.service.handle_event(websocket, event, frame.get("data"))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        await chat.service.disconnect(websocket)

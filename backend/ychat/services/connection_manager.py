# backend/ychat/services/connection_manager.py

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionPhase(str, Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionState:
    """Per-connection session, owned by the ConnectionManager."""

    connection_id: str
    phase: ConnectionPhase = ConnectionPhase.CONNECTED
    username: Optional[str] = None
    room: Optional[str] = None
    avatar_ref: Optional[str] = None


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Manages WebSocket connections and the room each one is bound to.

    Data Structures:
        rooms: Maps room name -> Set of WebSocket connections in that room
               Example: {"lobby": {websocket1, websocket2}}

        connections: Maps WebSocket -> ConnectionState (phase, username,
                     room, avatar)

    A connection is bound to at most one room. Every mutation here is
    synchronous, so a broadcast never observes a half-moved connection.

    Scaling:
        Single process only. Fan-out is an in-memory walk over `rooms`.
    """

    def __init__(self) -> None:
        # Map: room name -> Set[WebSocket connections]
        self.rooms: Dict[str, Set[WebSocket]] = {}

        # Map: WebSocket -> session state
        self.connections: Dict[WebSocket, ConnectionState] = {}

    async def connect(self, websocket: WebSocket) -> ConnectionState:
        """
        Accept a new WebSocket connection.

        The connection starts in CONNECTED and is not part of any room until
        the client sends a joinRoom event.
        """
        await websocket.accept()

        state = ConnectionState(connection_id=uuid.uuid4().hex)
        self.connections[websocket] = state

        logger.info("✓ Connection %s opened. Total: %d", state.connection_id, len(self.connections))
        return state

    def get_state(self, websocket: WebSocket) -> Optional[ConnectionState]:
        return self.connections.get(websocket)

    def bind(
        self,
        websocket: WebSocket,
        room: str,
        username: str,
        avatar_ref: Optional[str] = None,
    ) -> Optional[ConnectionState]:
        """
        Move a connection into `room` under `username`.

        Args:
            websocket: The connection
            room: Room to bind to
            username: Display name for this session
            avatar_ref: Avatar reference, if any

        Returns:
            A snapshot of the state before the bind, or None if the
            connection is already gone
        """
        state = self.connections.get(websocket)
        if state is None:
            return None

        previous = replace(state)
        if state.room is not None and state.room != room:
            self._discard(websocket, state.room)

        self.rooms.setdefault(room, set()).add(websocket)
        state.room = room
        state.username = username
        state.avatar_ref = avatar_ref
        state.phase = ConnectionPhase.JOINED
        return previous

    def disconnect(self, websocket: WebSocket) -> Optional[ConnectionState]:
        """
        Handle WebSocket disconnection and cleanup.

        Returns the final state the first time it is called for a connection
        and None afterwards, so room cleanup driven by the return value runs
        exactly once.
        """
        state = self.connections.pop(websocket, None)
        if state is None:
            return None

        if state.room is not None:
            self._discard(websocket, state.room)
        state.phase = ConnectionPhase.DISCONNECTED

        logger.info(
            "✗ Connection %s (%s) closed. Total: %d",
            state.connection_id,
            state.username or "not joined",
            len(self.connections),
        )
        return state

    def _discard(self, websocket: WebSocket, room: str) -> None:
        connections = self.rooms.get(room)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self.rooms[room]

    def connections_in(self, room: str) -> List[WebSocket]:
        return list(self.rooms.get(room, ()))

    @staticmethod
    def envelope(event: str, data: Any) -> dict:
        return {"event": event, "data": data}

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Send one event to one connection. Returns False if the send failed."""
        try:
            await websocket.send_json(self.envelope(event, data))
            return True
        except Exception as e:
            state = self.connections.get(websocket)
            logger.warning(
                "Send error on connection %s: %s",
                state.connection_id if state else "unknown",
                e,
            )
            return False

    async def broadcast_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        exclude: Optional[WebSocket] = None,
    ) -> int:
        """
        Broadcast an event to every connection bound to a room.

        Args:
            room: Target room name
            event: Outbound event name
            data: JSON-serializable payload
            exclude: Connection to skip (the originator, for typing events)

        Returns:
            Number of connections the event was delivered to

        Error Handling:
            A failed send drops that connection from the room's fan-out set.
            Full session cleanup happens when its receive loop ends.
        """
        targets = [conn for conn in self.connections_in(room) if conn is not exclude]
        if not targets:
            logger.debug("[routing] Skipped %s: room=%s has no other subscribers", event, room)
            return 0

        logger.debug("📨 Broadcasting %s to room %s: %d clients", event, room, len(targets))
        results = await asyncio.gather(*[self.send(conn, event, data) for conn in targets])

        for conn, delivered in zip(targets, results):
            if not delivered:
                self._discard(conn, room)
        return sum(1 for delivered in results if delivered)

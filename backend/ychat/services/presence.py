# backend/ychat/services/presence.py

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import WebSocket

from ychat.models.models import Member
from ychat.services.connection_manager import ConnectionManager
from ychat.services.room_manager import RoomManager

logger = logging.getLogger(__name__)


class PresenceCoordinator:
    """
    Join/leave broadcasts and typing notifications.

    Membership changes go through the RoomManager and the resulting list is
    pushed to every connection bound to the room, the one that caused the
    change included. Typing events are never stored and never echoed back
    to their sender.
    """

    def __init__(self, registry: RoomManager, connections: ConnectionManager) -> None:
        self.registry = registry
        self.connections = connections

    @staticmethod
    def users_list(members: List[Member]) -> list:
        return [member.model_dump(exclude_none=True) for member in members]

    async def member_joined(self, room: str, username: str, avatar_ref: Optional[str]) -> List[Member]:
        members = self.registry.join(room, username, avatar_ref)
        logger.info("→ %s joined '%s' (%d members)", username, room, len(members))
        await self.connections.broadcast_to_room(room, "usersList", self.users_list(members))
        return members

    async def member_left(self, room: str, username: str) -> List[Member]:
        members = self.registry.leave(room, username)
        logger.info("← %s left '%s' (%d members)", username, room, len(members))
        await self.connections.broadcast_to_room(room, "usersList", self.users_list(members))
        return members

    async def typing(self, origin: WebSocket, room: str, username: str, active: bool) -> int:
        event = "userTyping" if active else "userStopTyping"
        return await self.connections.broadcast_to_room(
            room, event, {"username": username}, exclude=origin
        )

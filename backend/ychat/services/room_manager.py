# backend/ychat/services/room_manager.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ychat.models.models import Member, Room

logger = logging.getLogger(__name__)


# ============================================================================
# ROOM REGISTRY
# ============================================================================
class RoomManager:
    """
    In-memory registry of rooms and their current members.

    Rooms are created implicitly on first join and are never deleted while
    the process runs; an empty room keeps its shell. Members are keyed by
    username, so the member list of a room never holds the same username
    twice, and list order is join order.

    All methods are synchronous and never await, which makes each of them
    atomic with respect to the other coroutines on the event loop. Callers
    get copies, never the internal lists.

    Attributes:
        rooms: room name -> Room metadata
        members: room name -> {username -> Member}

    Usage:
        registry = RoomManager()
        registry.join("lobby", "alice", None)
        registry.members_of("lobby")  # [Member(username="alice")]
    """

    def __init__(self) -> None:
        self.rooms: Dict[str, Room] = {}
        self.members: Dict[str, Dict[str, Member]] = {}

    def _ensure_room(self, name: str) -> Room:
        room = self.rooms.get(name)
        if room is None:
            room = Room(name=name, created_at=datetime.now(timezone.utc).isoformat())
            self.rooms[name] = room
            self.members[name] = {}
            logger.info("✓ Created room: %s", name)
        return room

    def join(self, room_name: str, username: str, avatar_ref: Optional[str] = None) -> List[Member]:
        """
        Add a member to a room.

        Joining again under the same username refreshes the avatar and keeps
        the member's original position.

        Returns:
            The room's member list after the add
        """
        room = self._ensure_room(room_name)
        members = self.members[room_name]
        existing = members.get(username)
        if existing is None:
            members[username] = Member(username=username, avatarRef=avatar_ref)
        elif avatar_ref is not None:
            existing.avatarRef = avatar_ref
        room.member_count = len(members)
        return self.members_of(room_name)

    def leave(self, room_name: str, username: str) -> List[Member]:
        """Remove a member; a no-op when absent. Returns the resulting list."""
        members = self.members.get(room_name)
        if members is not None and members.pop(username, None) is not None:
            self.rooms[room_name].member_count = len(members)
        return self.members_of(room_name)

    def members_of(self, room_name: str) -> List[Member]:
        return [member.model_copy() for member in self.members.get(room_name, {}).values()]

    def get_room(self, room_name: str) -> Optional[Room]:
        room = self.rooms.get(room_name)
        return room.model_copy() if room else None

    def list_rooms(self) -> List[Room]:
        return [room.model_copy() for room in self.rooms.values()]

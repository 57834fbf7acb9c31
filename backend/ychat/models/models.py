# backend/ychat/models/models.py
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Member(BaseModel):
    username: str
    avatarRef: Optional[str] = None


class Room(BaseModel):
    name: str
    created_at: str
    member_count: int = 0


class RoomDetail(Room):
    members: List[Member] = Field(default_factory=list)


class Message(BaseModel):
    """
    A persisted chat message.

    Stored with `id`, sent to clients as `_id`. `readBy` always starts with
    the author and never holds a username twice.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="_id")
    roomName: str
    user: str
    text: str = ""
    avatarRef: Optional[str] = None
    imageRef: Optional[str] = None
    createdAt: datetime
    readBy: List[str] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_record(self) -> str:
        return self.model_dump_json(exclude_none=True)


# ============================================================================
# INBOUND EVENT PAYLOADS
# ============================================================================

class JoinRoomRequest(BaseModel):
    roomName: str
    username: str
    avatarRef: Optional[str] = None
    passkey: Optional[str] = None


class ChatMessageRequest(BaseModel):
    roomName: str
    user: Optional[str] = None
    text: Optional[str] = ""
    avatarRef: Optional[str] = None
    imageRef: Optional[str] = None


class MessageReadRequest(BaseModel):
    messageId: str
    roomName: Optional[str] = None
    username: Optional[str] = None


class TypingRequest(BaseModel):
    roomName: Optional[str] = None
    username: Optional[str] = None

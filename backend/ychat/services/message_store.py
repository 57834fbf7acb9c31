# backend/ychat/services/message_store.py

from __future__ import annotations

import base64
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from ychat.core.errors import NotFoundError, PersistenceError
from ychat.models.models import Message

logger = logging.getLogger(__name__)

# Hard retention window. Not a setting on purpose: clients rely on it.
MESSAGE_TTL = timedelta(hours=24)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


# ============================================================================
# STORE INTERFACE
# ============================================================================

class MessageStore(ABC):
    """
    Append-only message log per room with a 24 hour TTL.

    Implementations must never return a message older than MESSAGE_TTL,
    whether or not `purge_expired` has run yet, so an expired message can
    not come back.

    Every backend failure is raised as PersistenceError; callers never see
    driver exceptions.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self.clock = clock

    def is_expired(self, message: Message, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return now - message.createdAt >= MESSAGE_TTL

    @abstractmethod
    async def append(
        self,
        room: str,
        author: str,
        avatar_ref: Optional[str],
        text: str,
        image_ref: Optional[str],
    ) -> Message:
        """Persist a new message, read-by pre-seeded with its author."""

    @abstractmethod
    async def history(self, room: str) -> List[Message]:
        """Non-expired messages of a room, oldest first."""

    @abstractmethod
    async def get(self, message_id: str) -> Message:
        """Look up one message. Unknown or expired ids raise NotFoundError."""

    @abstractmethod
    async def mark_read(self, message_id: str, username: str) -> List[str]:
        """Add a reader (idempotent) and return the full reader list."""

    @abstractmethod
    async def purge_expired(self) -> List[str]:
        """Drop expired messages and return their ids."""

    @abstractmethod
    async def save_blob(self, media_type: str, data: bytes) -> str:
        """Store a binary payload out of band and return its id."""

    @abstractmethod
    async def load_blob(self, blob_id: str) -> Tuple[str, bytes]:
        """Return (media_type, data) for a stored blob."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise PersistenceError if the backend is unreachable."""

    async def close(self) -> None:
        return None


# ============================================================================
# IN-PROCESS BACKEND
# ============================================================================

class MemoryMessageStore(MessageStore):
    """
    Process-local store for development and tests.

    Nothing survives a restart. Records are copied on the way in and out so
    callers can not mutate stored state behind the store's back.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        super().__init__(clock)
        self._rooms: Dict[str, List[Message]] = {}
        self._messages: Dict[str, Message] = {}
        self._blobs: Dict[str, Tuple[str, bytes, datetime]] = {}

    async def append(self, room, author, avatar_ref, text, image_ref) -> Message:
        log = self._rooms.setdefault(room, [])
        created_at = self.clock()
        if log and log[-1].createdAt > created_at:
            # Keep the log ordered even if the clock steps backwards
            created_at = log[-1].createdAt

        message = Message(
            roomName=room,
            user=author,
            avatarRef=avatar_ref,
            text=text or "",
            imageRef=image_ref,
            createdAt=created_at,
            readBy=[author],
        )
        log.append(message)
        self._messages[message.id] = message
        return message.model_copy(deep=True)

    async def history(self, room: str) -> List[Message]:
        now = self.clock()
        return [
            message.model_copy(deep=True)
            for message in self._rooms.get(room, [])
            if not self.is_expired(message, now)
        ]

    def _live(self, message_id: str) -> Message:
        message = self._messages.get(message_id)
        if message is None or self.is_expired(message):
            raise NotFoundError(f"Message {message_id} not found")
        return message

    async def get(self, message_id: str) -> Message:
        return self._live(message_id).model_copy(deep=True)

    async def mark_read(self, message_id: str, username: str) -> List[str]:
        message = self._live(message_id)
        if username not in message.readBy:
            message.readBy.append(username)
        return list(message.readBy)

    async def purge_expired(self) -> List[str]:
        now = self.clock()
        expired: List[str] = []
        for room, log in self._rooms.items():
            keep = [m for m in log if not self.is_expired(m, now)]
            if len(keep) == len(log):
                continue
            kept_ids = {m.id for m in keep}
            for message in log:
                if message.id not in kept_ids:
                    expired.append(message.id)
                    self._messages.pop(message.id, None)
            self._rooms[room] = keep

        for blob_id, (_, _, stored_at) in list(self._blobs.items()):
            if now - stored_at >= MESSAGE_TTL:
                del self._blobs[blob_id]
        return expired

    async def save_blob(self, media_type: str, data: bytes) -> str:
        blob_id = uuid.uuid4().hex
        self._blobs[blob_id] = (media_type, data, self.clock())
        return blob_id

    async def load_blob(self, blob_id: str) -> Tuple[str, bytes]:
        entry = self._blobs.get(blob_id)
        if entry is None or self.clock() - entry[2] >= MESSAGE_TTL:
            raise NotFoundError(f"Blob {blob_id} not found")
        return entry[0], entry[1]

    async def ping(self) -> None:
        return None


# ============================================================================
# REDIS BACKEND
# ============================================================================

class RedisMessageStore(MessageStore):
    """
    Redis-backed message log.

    Key layout (prefix defaults to "ychat"):
        {prefix}:room:{room}:messages     stream, one entry per message
                                          ({"id": message_id}); the entry
                                          id is the creation time in ms
        {prefix}:message:{id}             JSON record, PEXPIREAT created+24h
        {prefix}:message:{id}:read_by     sorted set of readers scored by
                                          read time, same expiry
        {prefix}:blob:{id}                JSON {"mediaType", "data"(base64)}

    Redis assigns stream ids, which are strictly increasing per key, so
    creation timestamps are monotonic per room without client coordination.
    Record keys expire on their own; `purge_expired` trims the streams and
    reports the ids it dropped.
    """

    def __init__(
        self,
        client: "redis.Redis",
        clock: Clock = utcnow,
        prefix: str = "ychat",
    ) -> None:
        super().__init__(clock)
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisMessageStore":
        client = redis.from_url(url, decode_responses=True)
        return cls(client, **kwargs)

    def _room_key(self, room: str) -> str:
        return f"{self.prefix}:room:{room}:messages"

    def _message_key(self, message_id: str) -> str:
        return f"{self.prefix}:message:{message_id}"

    def _readers_key(self, message_id: str) -> str:
        return f"{self.prefix}:message:{message_id}:read_by"

    def _blob_key(self, blob_id: str) -> str:
        return f"{self.prefix}:blob:{blob_id}"

    async def append(self, room, author, avatar_ref, text, image_ref) -> Message:
        message_id = uuid.uuid4().hex
        try:
            stream_id = await self.client.xadd(self._room_key(room), {"id": message_id})
            created_ms = int(str(stream_id).split("-")[0])
            message = Message(
                id=message_id,
                roomName=room,
                user=author,
                avatarRef=avatar_ref,
                text=text or "",
                imageRef=image_ref,
                createdAt=datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc),
                readBy=[author],
            )
            expire_at_ms = created_ms + int(MESSAGE_TTL.total_seconds() * 1000)

            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self._message_key(message_id), message.to_record(), pxat=expire_at_ms)
                pipe.zadd(self._readers_key(message_id), {author: created_ms}, nx=True)
                pipe.pexpireat(self._readers_key(message_id), expire_at_ms)
                await pipe.execute()
        except RedisError as e:
            logger.error("Failed to append message to room '%s': %s", room, e)
            raise PersistenceError("Failed to save message") from e

        return message

    async def history(self, room: str) -> List[Message]:
        now = self.clock()
        cutoff_ms = _to_ms(now - MESSAGE_TTL)
        try:
            entries = await self.client.xrange(self._room_key(room), min=str(cutoff_ms + 1), max="+")
            message_ids = [fields["id"] for _, fields in entries if "id" in fields]
            if not message_ids:
                return []

            async with self.client.pipeline(transaction=False) as pipe:
                for message_id in message_ids:
                    pipe.get(self._message_key(message_id))
                    pipe.zrange(self._readers_key(message_id), 0, -1)
                results = await pipe.execute()
        except RedisError as e:
            logger.error("Failed to load history for room '%s': %s", room, e)
            raise PersistenceError("Failed to load messages") from e

        messages: List[Message] = []
        for raw, readers in zip(results[0::2], results[1::2]):
            if raw is None:
                # Record expired between XRANGE and GET
                continue
            message = Message.model_validate_json(raw)
            if self.is_expired(message, now):
                continue
            if readers:
                message.readBy = list(readers)
            messages.append(message)
        return messages

    async def get(self, message_id: str) -> Message:
        try:
            raw = await self.client.get(self._message_key(message_id))
            if raw is None:
                raise NotFoundError(f"Message {message_id} not found")
            readers = await self.client.zrange(self._readers_key(message_id), 0, -1)
        except RedisError as e:
            logger.error("Failed to load message %s: %s", message_id, e)
            raise PersistenceError("Failed to load messages") from e

        message = Message.model_validate_json(raw)
        if self.is_expired(message):
            raise NotFoundError(f"Message {message_id} not found")
        if readers:
            message.readBy = list(readers)
        return message

    async def mark_read(self, message_id: str, username: str) -> List[str]:
        try:
            raw = await self.client.get(self._message_key(message_id))
            if raw is None:
                raise NotFoundError(f"Message {message_id} not found")
            message = Message.model_validate_json(raw)
            if self.is_expired(message):
                raise NotFoundError(f"Message {message_id} not found")

            score = max(_to_ms(self.clock()), _to_ms(message.createdAt))
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.zadd(self._readers_key(message_id), {username: score}, nx=True)
                pipe.zrange(self._readers_key(message_id), 0, -1)
                _, readers = await pipe.execute()
        except RedisError as e:
            logger.error("Failed to mark message %s read: %s", message_id, e)
            raise PersistenceError("Failed to record read receipt") from e

        return list(readers)

    async def purge_expired(self) -> List[str]:
        cutoff_ms = _to_ms(self.clock() - MESSAGE_TTL)
        expired: List[str] = []
        try:
            async for key in self.client.scan_iter(match=f"{self.prefix}:room:*:messages"):
                entries = await self.client.xrange(key, min="-", max=str(cutoff_ms))
                if not entries:
                    continue
                ids = [fields["id"] for _, fields in entries if "id" in fields]
                await self.client.xtrim(key, minid=str(cutoff_ms + 1), approximate=False)
                if ids:
                    doomed = [self._message_key(i) for i in ids] + [self._readers_key(i) for i in ids]
                    await self.client.delete(*doomed)
                expired.extend(ids)
        except RedisError as e:
            logger.error("Expiry sweep failed: %s", e)
            raise PersistenceError("Failed to purge expired messages") from e
        return expired

    async def save_blob(self, media_type: str, data: bytes) -> str:
        blob_id = uuid.uuid4().hex
        payload = json.dumps({"mediaType": media_type, "data": base64.b64encode(data).decode("ascii")})
        try:
            await self.client.set(self._blob_key(blob_id), payload, ex=int(MESSAGE_TTL.total_seconds()))
        except RedisError as e:
            logger.error("Failed to store blob: %s", e)
            raise PersistenceError("Failed to store attachment") from e
        return blob_id

    async def load_blob(self, blob_id: str) -> Tuple[str, bytes]:
        try:
            raw = await self.client.get(self._blob_key(blob_id))
        except RedisError as e:
            raise PersistenceError("Failed to load attachment") from e
        if raw is None:
            raise NotFoundError(f"Blob {blob_id} not found")
        payload = json.loads(raw)
        return payload["mediaType"], base64.b64decode(payload["data"])

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            raise PersistenceError("Redis unreachable") from e

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")

# backend/ychat/services/chat_service.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Type, TypeVar

from fastapi import WebSocket
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ychat.core.errors import ChatError, NotFoundError, PersistenceError, ValidationError
from ychat.models.models import ChatMessageRequest, JoinRoomRequest, MessageReadRequest, TypingRequest
from ychat.services.access_policy import AccessPolicy, OpenAccessPolicy
from ychat.services.blobs import externalize
from ychat.services.connection_manager import ConnectionManager, ConnectionPhase, ConnectionState
from ychat.services.message_store import MessageStore
from ychat.services.presence import PresenceCoordinator
from ychat.services.read_receipts import ReadReceiptTracker

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)
Handler = Callable[[WebSocket, Any], Awaitable[None]]


def parse_payload(model: Type[RequestT], data: Any) -> RequestT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid request") from e


# ============================================================================
# SESSION GATEWAY
# ============================================================================

class ChatService:
    """
    Routes inbound events to the store, registry and tracker, and fans the
    results out to the right connections.

    Connection lifecycle:
        CONNECTED --joinRoom--> JOINED --disconnect--> DISCONNECTED

    Ordering:
        Sends and read receipts for a room run under that room's lock, so
        broadcast order equals persistence order. Joins fetch history and
        bind the connection under the same lock, so a joining client sees
        every message exactly once: either in its history or as a live
        event.

    Failures:
        Every ChatError is answered on the originating connection only
        (joinError for joins, error otherwise). Read receipts for unknown
        messages are logged and dropped.
    """

    def __init__(
        self,
        store: MessageStore,
        connections: ConnectionManager,
        presence: PresenceCoordinator,
        tracker: ReadReceiptTracker,
        access_policy: AccessPolicy | None = None,
        max_blob_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self.store = store
        self.connections = connections
        self.presence = presence
        self.tracker = tracker
        self.access_policy = access_policy or OpenAccessPolicy()
        self.max_blob_bytes = max_blob_bytes
        self.message_counter = 0

        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._handlers: Dict[str, Handler] = {
            "joinRoom": self.join_room,
            "chatMessage": self.chat_message,
            "messageRead": self.message_read,
            "typing": self.typing,
            "stopTyping": self.stop_typing,
        }

    def _room_lock(self, room: str) -> asyncio.Lock:
        return self._room_locks.setdefault(room, asyncio.Lock())

    def _joined_state(self, websocket: WebSocket) -> ConnectionState:
        state = self.connections.get_state(websocket)
        if state is None or state.phase is not ConnectionPhase.JOINED:
            raise ValidationError("Join a room first")
        return state

    async def _reply_error(self, websocket: WebSocket, event: str, error: ChatError) -> None:
        await self.connections.send(websocket, event, {"message": error.message})

    async def handle_event(self, websocket: WebSocket, event: Any, data: Any) -> None:
        """
        Dispatch one inbound event.

        Nothing raised here may take down the connection loop: unknown events
        and unexpected failures are answered with an error event.
        """
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            await self._reply_error(websocket, "error", ValidationError(f"Unknown event: {event}"))
            return

        try:
            await handler(websocket, data)
        except ChatError as e:
            await self._reply_error(websocket, "error", e)
        except Exception:
            logger.exception("Unhandled error processing %s", event)
            await self._reply_error(websocket, "error", ChatError("Internal error"))

    # ------------------------------------------------------------------
    # joinRoom
    # ------------------------------------------------------------------

    async def join_room(self, websocket: WebSocket, data: Any) -> None:
        """
        Bind a connection to a room and announce it.

        A connection that was already in another room leaves it first, with
        a presence broadcast there. On any failure only the requester hears
        about it (joinError) and its previous state is untouched.
        """
        try:
            request = parse_payload(JoinRoomRequest, data)
            room = request.roomName.strip()
            username = request.username.strip()
            if not room or not username:
                raise ValidationError("Username and room name are required")
            self.access_policy.check(room, username, request.passkey)
            avatar_ref = await externalize(self.store, request.avatarRef, self.max_blob_bytes)
        except ChatError as e:
            logger.warning("Join rejected: %s", e.message)
            await self._reply_error(websocket, "joinError", e)
            return

        async with self._room_lock(room):
            try:
                history = await self.store.history(room)
            except PersistenceError as e:
                logger.error("Join to '%s' failed, store unavailable: %s", room, e)
                await self._reply_error(websocket, "joinError", e)
                return

            previous = self.connections.bind(websocket, room, username, avatar_ref)
            if previous is None:
                return
            await self.connections.send(
                websocket,
                "joinedRoom",
                {"roomName": room, "messages": [message.to_wire() for message in history]},
            )

        if (
            previous.phase is ConnectionPhase.JOINED
            and previous.room is not None
            and (previous.room, previous.username) != (room, username)
        ):
            await self.presence.member_left(previous.room, previous.username)

        await self.presence.member_joined(room, username, avatar_ref)

    # ------------------------------------------------------------------
    # chatMessage
    # ------------------------------------------------------------------

    async def chat_message(self, websocket: WebSocket, data: Any) -> None:
        """
        Persist a message and broadcast it to the room.

        The author avatar defaults to the one given at join time. If the
        store fails, only the sender gets an error and nothing is broadcast.
        """
        try:
            state = self._joined_state(websocket)
            request = parse_payload(ChatMessageRequest, data)
            room = request.roomName.strip()
            if room != state.room:
                raise ValidationError("You have not joined this room")

            author = (request.user or state.username or "").strip()
            if not author:
                raise ValidationError("Username is required")

            text = request.text or ""
            image_ref = await externalize(self.store, request.imageRef, self.max_blob_bytes)
            if not text.strip() and not image_ref:
                raise ValidationError("Message is empty")
            avatar_ref = state.avatar_ref or await externalize(
                self.store, request.avatarRef, self.max_blob_bytes
            )

            async with self._room_lock(room):
                message = await self.store.append(room, author, avatar_ref, text, image_ref)
                self.message_counter += 1
                await self.connections.broadcast_to_room(room, "chatMessage", message.to_wire())
        except ChatError as e:
            logger.warning("chatMessage rejected: %s", e.message)
            await self._reply_error(websocket, "error", e)

    # ------------------------------------------------------------------
    # messageRead
    # ------------------------------------------------------------------

    async def message_read(self, websocket: WebSocket, data: Any) -> None:
        """
        Record a reader and tell the message's room.

        The receipt goes to the room the message was posted in, which is
        not necessarily the reader's current room.
        """
        state = self._joined_state(websocket)
        request = parse_payload(MessageReadRequest, data)
        username = (request.username or state.username or "").strip()
        if not username:
            raise ValidationError("Username is required")

        try:
            room = (await self.store.get(request.messageId)).roomName
            async with self._room_lock(room):
                readers = await self.tracker.record_read(request.messageId, username)
                await self.connections.broadcast_to_room(
                    room, "readReceipt", {"messageId": request.messageId, "readBy": readers}
                )
        except NotFoundError:
            logger.info("Ignoring read receipt for unknown message %s", request.messageId)

    # ------------------------------------------------------------------
    # typing / stopTyping
    # ------------------------------------------------------------------

    async def _typing(self, websocket: WebSocket, data: Any, active: bool) -> None:
        state = self._joined_state(websocket)
        request = parse_payload(TypingRequest, data if data is not None else {})
        if request.roomName is not None and request.roomName.strip() != state.room:
            raise ValidationError("You have not joined this room")
        await self.presence.typing(websocket, state.room, state.username, active)

    async def typing(self, websocket: WebSocket, data: Any) -> None:
        await self._typing(websocket, data, active=True)

    async def stop_typing(self, websocket: WebSocket, data: Any) -> None:
        await self._typing(websocket, data, active=False)

    # ------------------------------------------------------------------
    # disconnect
    # ------------------------------------------------------------------

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove the connection and announce it. Safe to call more than once."""
        state = self.connections.disconnect(websocket)
        if state is None or state.room is None or state.username is None:
            return
        await self.presence.member_left(state.room, state.username)

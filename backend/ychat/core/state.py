# backend/ychat/core/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from starlette.requests import HTTPConnection

from ychat.core.config import Settings
from ychat.services.access_policy import build_access_policy
from ychat.services.chat_service import ChatService
from ychat.services.connection_manager import ConnectionManager
from ychat.services.message_store import MemoryMessageStore, MessageStore, RedisMessageStore
from ychat.services.presence import PresenceCoordinator
from ychat.services.read_receipts import ReadReceiptTracker
from ychat.services.room_manager import RoomManager
from ychat.services.sweeper import ExpirySweeper


@dataclass
class ChatState:
    """
    Everything the application shares between connections.

    Built once at startup, stored on `app.state.chat` and torn down at
    shutdown. Route handlers reach it through `get_chat_state`.
    """

    store: MessageStore
    room_manager: RoomManager
    connection_manager: ConnectionManager
    tracker: ReadReceiptTracker
    presence: PresenceCoordinator
    service: ChatService
    sweeper: ExpirySweeper
    app_start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    async def start(self) -> None:
        # No degraded mode: an unreachable store aborts startup
        await self.store.ping()
        self.sweeper.start()

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.store.close()


def build_store(settings: Settings) -> MessageStore:
    if settings.MESSAGE_STORE == "memory":
        return MemoryMessageStore()
    if settings.MESSAGE_STORE == "redis":
        return RedisMessageStore.from_url(settings.redis_url)
    raise ValueError(f"Unknown MESSAGE_STORE: {settings.MESSAGE_STORE}")


def build_state(settings: Settings, store: MessageStore | None = None) -> ChatState:
    store = store or build_store(settings)
    room_manager = RoomManager()
    connection_manager = ConnectionManager()
    tracker = ReadReceiptTracker(store)
    presence = PresenceCoordinator(room_manager, connection_manager)
    service = ChatService(
        store=store,
        connections=connection_manager,
        presence=presence,
        tracker=tracker,
        access_policy=build_access_policy(settings.ROOM_PASSKEYS),
        max_blob_bytes=settings.MAX_BLOB_BYTES,
    )
    return ChatState(
        store=store,
        room_manager=room_manager,
        connection_manager=connection_manager,
        tracker=tracker,
        presence=presence,
        service=service,
        sweeper=ExpirySweeper(store, tracker, interval=settings.SWEEP_INTERVAL_SECONDS),
    )


def get_chat_state(connection: HTTPConnection) -> ChatState:
    """FastAPI dependency; works for both HTTP requests and WebSockets."""
    return connection.app.state.chat

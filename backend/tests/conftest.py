"""Shared test fixtures and configuration for backend tests."""
import os

# Must be set before ychat.core.config is imported
os.environ.setdefault("MESSAGE_STORE", "memory")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "3600")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from ychat.core.config import Settings  # noqa: E402
from ychat.core.state import build_state  # noqa: E402
from ychat.main import app  # noqa: E402
from ychat.services.message_store import MemoryMessageStore  # noqa: E402


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeWebSocket:
    """Records what the server sends; can be told to fail like a dead socket."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.sent: list = []
        self.accepted = False
        self.fail = False

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name}: socket closed")
        self.sent.append(data)

    def events(self, name: str | None = None) -> list:
        return [frame for frame in self.sent if name is None or frame["event"] == name]

    def last(self, name: str):
        matching = self.events(name)
        assert matching, f"{self.name} received no {name} event; got {self.sent}"
        return matching[-1]["data"]

    def __repr__(self) -> str:
        return f"FakeWebSocket({self.name})"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryMessageStore(clock=clock)


@pytest.fixture
def chat_state(store):
    """A fully wired ChatState on the in-memory store, no HTTP layer."""
    return build_state(Settings(), store=store)


@pytest.fixture
def make_socket(chat_state):
    """Create FakeWebSockets already accepted by the connection manager."""

    async def _make(name: str) -> FakeWebSocket:
        websocket = FakeWebSocket(name)
        await chat_state.connection_manager.connect(websocket)
        return websocket

    return _make


@pytest.fixture
def api_client():
    """TestClient with startup/shutdown events run, on the in-memory store."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def app_chat(api_client):
    """The ChatState the running app built at startup."""
    return app.state.chat

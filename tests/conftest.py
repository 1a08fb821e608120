from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Any, Dict, List

import pytest

# Load the test configuration layer before anything imports `config`.
os.environ["APP_ENV"] = "test"
os.environ.pop("FLASK_ENV", None)
os.environ.pop("SOCKET_REQUIRE_AUTH", None)

import mongomock  # noqa: E402

from rental_server.messaging.service import MessagingService  # noqa: E402
from rental_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes  # noqa: E402
from rental_server.security.authentication import AuthSecurity  # noqa: E402
from rental_server.websocket.hub import RealtimeGateway  # noqa: E402

TEST_SECRET = "test-secret"


class FakeTransport:
    """Records emits and room changes instead of talking to a Socket.IO server."""

    def __init__(self) -> None:
        self.emitted: List[Dict[str, Any]] = []
        self.room_changes: List[tuple] = []
        self.fail_connections: set = set()

    def emit_to_connection(self, connection_id, event, data, namespace="/"):
        if connection_id in self.fail_connections:
            return False
        self.emitted.append({"to": connection_id, "event": event, "data": data, "namespace": namespace})
        return True

    def emit_to_room(self, room_id, event, data, namespace="/chat"):
        self.emitted.append({"to": room_id, "event": event, "data": data, "namespace": namespace})
        return True

    def enter_room(self, connection_id, room_id, namespace="/chat"):
        self.room_changes.append(("enter", connection_id, room_id, namespace))

    def leave_room(self, connection_id, room_id, namespace="/chat"):
        self.room_changes.append(("leave", connection_id, room_id, namespace))

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.emitted if e["event"] == name]

    def clear(self) -> None:
        self.emitted.clear()
        self.room_changes.clear()


class StepClock:
    """Deterministic replacement for now_std: each call advances by one second."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def db():
    database = mongomock.MongoClient().db
    ensure_indexes(database)
    yield database
    MongoRepositorySingleton.reset()


@pytest.fixture
def store(db) -> MessagingService:
    return MessagingService(db)


@pytest.fixture
def clock(monkeypatch) -> StepClock:
    step = StepClock()
    monkeypatch.setattr("rental_server.messaging.service.now_std", step)
    return step


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def auth_secret():
    previous = (AuthSecurity.secret_key, AuthSecurity.algorithm)
    AuthSecurity.configure(TEST_SECRET)
    yield TEST_SECRET
    AuthSecurity.secret_key, AuthSecurity.algorithm = previous


@pytest.fixture
def gateway(transport, store, auth_secret) -> RealtimeGateway:
    return RealtimeGateway(transport, store, chat_namespace="/chat", notification_namespace="/", require_auth=False)


@pytest.fixture
def make_token(auth_secret):
    def _make(user_id: str, **claims: Any) -> str:
        return AuthSecurity.encode_token({"user_id": user_id, **claims})
    return _make

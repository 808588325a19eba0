"""
Pytest configuration and fixtures for chat gateway tests.
"""

import os

# Must be set before shared.config.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("JWT_SECRET", "test-secret-for-chat-gateway-suite-0123456789")

import asyncio
import itertools
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from shared.models import Base
from chat_gateway.components.connection.connection import Connection
from chat_gateway.components.connection.registry import ConnectionRegistry
from chat_gateway.components.data.message_repository import (
    MessageStoreError,
    SqlMessageStore,
    StoredMessage,
)
from chat_gateway.components.metrics.collector import MetricsCollector


# =============================================================================
# Fakes
# =============================================================================


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self, headers=None, cookies=None):
        self.headers = headers or {}
        self.cookies = cookies or {}
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.fail_sends = False

    async def send_text(self, data: str) -> None:
        if self.fail_sends or self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("WebSocket is not connected")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.close_reason = reason
        self.application_state = WebSocketState.DISCONNECTED
        self.client_state = WebSocketState.DISCONNECTED

    def drop(self) -> None:
        """Simulate the peer vanishing without a close frame."""
        self.client_state = WebSocketState.DISCONNECTED


class InMemoryMessageStore:
    """Message store double recording every create."""

    def __init__(self):
        self.records: list[StoredMessage] = []
        self.fail = False
        self.delay = 0.0
        self._ids = itertools.count(1)

    async def create(self, sender, recipient, text, file):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise MessageStoreError("Message could not be saved")
        message = StoredMessage(
            id=f"m{next(self._ids)}",
            sender=sender,
            recipient=recipient,
            text=text,
            file=file,
            created_at=datetime.now(timezone.utc),
        )
        self.records.append(message)
        return message

    async def find_conversation(self, user_a, user_b):
        return [
            m for m in self.records
            if {m.sender, m.recipient} == {user_a, user_b}
        ]


class RecordingBlobStore:
    """Blob store double; writes can be held open with `gate` or made to fail."""

    def __init__(self):
        self.writes: dict[str, bytes] = {}
        self.gate: asyncio.Event | None = None
        self.fail = False

    async def write(self, name: str, data: bytes) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise OSError("disk full")
        self.writes[name] = data


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_ws():
    """Factory for fake websockets."""
    return FakeWebSocket


@pytest.fixture
def make_connection():
    """Factory for connections, optionally bound to a user."""

    def _make(user_id=None, username=None, **ws_kwargs):
        connection = Connection(websocket=FakeWebSocket(**ws_kwargs))
        if user_id is not None:
            connection.bind_identity(user_id, username or f"user-{user_id}")
        return connection

    return _make


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def memory_store():
    return InMemoryMessageStore()


@pytest.fixture
def blob_store():
    return RecordingBlobStore()


@pytest.fixture(scope="function")
def db_engine():
    """
    Fresh SQLite in-memory database per test.
    StaticPool keeps one connection so worker threads see the same tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def sql_store(session_factory):
    return SqlMessageStore(session_factory=session_factory)

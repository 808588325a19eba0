"""
Repository for chat messages.

The relay persists every message before delivering it, so this is on the
hot path of every chat event. SQLAlchemy sessions are synchronous; calls
run in a worker thread via asyncio.to_thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Protocol

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import SessionLocal, safe_commit
from shared.models import Message
from shared.models.base import utcnow

logger = get_logger(__name__)


class MessageStoreError(Exception):
    """Raised when the durable store could not complete an operation."""


@dataclass(frozen=True, slots=True)
class StoredMessage:
    """Detached, immutable view of a persisted message."""

    id: str
    sender: str | None
    recipient: str
    text: str | None
    file: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> "StoredMessage":
        return cls(
            id=message.id,
            sender=message.sender,
            recipient=message.recipient,
            text=message.text,
            file=message.file,
            created_at=message.created_at,
        )


class MessageStore(Protocol):
    """Durable message store used by the relay."""

    async def create(
        self,
        sender: str | None,
        recipient: str,
        text: str | None,
        file: str | None,
    ) -> StoredMessage: ...

    async def find_conversation(self, user_a: str, user_b: str) -> list[StoredMessage]: ...


class CreationClock:
    """
    Strictly increasing creation timestamps.

    Ids are random, so created_at is the only creation-order key; two
    messages persisted in the same microsecond (or after the wall clock
    stepped back) still get distinct, ordered values.
    """

    _STEP = timedelta(microseconds=1)

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def next(self) -> datetime:
        with self._lock:
            now = self._clock()
            if self._last is not None and now <= self._last:
                now = self._last + self._STEP
            self._last = now
            return now


class SqlMessageStore:
    """
    SQLAlchemy-backed message store.

    Usage:
        store = SqlMessageStore()
        stored = await store.create("u1", "u2", "hi", None)
        history = await store.find_conversation("u1", "u2")
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: CreationClock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or CreationClock()

    async def create(
        self,
        sender: str | None,
        recipient: str,
        text: str | None,
        file: str | None,
    ) -> StoredMessage:
        """
        Persist a message. The store assigns id and created_at.

        Raises:
            MessageStoreError: If the insert fails.
        """
        try:
            return await asyncio.to_thread(self._create_sync, sender, recipient, text, file)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to persist message",
                sender=sender,
                recipient=recipient,
                error=str(e),
            )
            raise MessageStoreError("Message could not be saved") from e

    def _create_sync(
        self,
        sender: str | None,
        recipient: str,
        text: str | None,
        file: str | None,
    ) -> StoredMessage:
        db = self._session_factory()
        try:
            message = Message(
                sender=sender,
                recipient=recipient,
                text=text,
                file=file,
                created_at=self._clock.next(),
            )
            db.add(message)
            safe_commit(db)
            db.refresh(message)
            return StoredMessage.from_model(message)
        finally:
            db.close()

    async def find_conversation(self, user_a: str, user_b: str) -> list[StoredMessage]:
        """
        Messages exchanged between two users in either direction,
        oldest first.

        Raises:
            MessageStoreError: If the query fails.
        """
        try:
            return await asyncio.to_thread(self._find_conversation_sync, user_a, user_b)
        except SQLAlchemyError as e:
            logger.error("Failed to load conversation", error=str(e))
            raise MessageStoreError("Conversation could not be loaded") from e

    def _find_conversation_sync(self, user_a: str, user_b: str) -> list[StoredMessage]:
        db = self._session_factory()
        try:
            stmt = (
                select(Message)
                .where(
                    or_(
                        and_(Message.sender == user_a, Message.recipient == user_b),
                        and_(Message.sender == user_b, Message.recipient == user_a),
                    )
                )
                .order_by(Message.created_at.asc())
            )
            return [StoredMessage.from_model(m) for m in db.scalars(stmt).all()]
        finally:
            db.close()

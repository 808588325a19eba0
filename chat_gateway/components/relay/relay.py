"""
Message Relay.

Pipeline for one inbound chat frame:

1. Parse and validate (MalformedPayloadError on garbage).
2. Discard frames without a recipient or without text and file.
3. Reject frames from anonymous connections.
4. Prepare the attachment: decode the data and generate the stored name.
5. Persist the message; a store failure aborts delivery and is reported
   to the sender, and the attachment bytes are never written.
6. Write the attachment to the blob store (background task unless
   await_attachment_write is set).
7. Forward the delivery event to every session of the recipient.

With the default background write, a recipient can receive the stored
file name before the bytes are on disk. Set
settings.relay_await_attachment_write to finish the write before forwarding.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from shared.config.logging import get_logger

from chat_gateway.components.broadcast.presence import send_to_connection
from chat_gateway.components.core.constants import WSConstants
from chat_gateway.components.core.context import sanitize_log_data
from chat_gateway.components.data.message_repository import (
    MessageStoreError,
    StoredMessage,
)
from chat_gateway.components.relay.attachments import (
    StoredNameGenerator,
    decode_attachment_data,
)
from chat_gateway.components.relay.errors import MalformedPayloadError
from chat_gateway.components.relay.schemas import (
    ERROR_MESSAGE_NOT_SAVED,
    ERROR_UNAUTHENTICATED,
    DeliveryEvent,
    InboundChatMessage,
    error_event,
)

if TYPE_CHECKING:
    from shared.infrastructure.storage import BlobStore
    from chat_gateway.components.connection.connection import Connection
    from chat_gateway.components.connection.registry import ConnectionRegistry
    from chat_gateway.components.data.message_repository import MessageStore
    from chat_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


class RelayOutcome(str, Enum):
    DELIVERED = "delivered"
    DISCARDED = "discarded"
    REJECTED_UNAUTHENTICATED = "rejected_unauthenticated"
    STORE_FAILED = "store_failed"


@dataclass(frozen=True, slots=True)
class RelayResult:
    """What happened to one inbound frame."""

    outcome: RelayOutcome
    message: StoredMessage | None = None
    delivered: int = 0


def parse_chat_message(raw: str) -> InboundChatMessage:
    """
    Parse a text frame into a chat event.

    Raises:
        MalformedPayloadError: If the frame is not a JSON object matching
            the inbound schema.
    """
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise MalformedPayloadError("Payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise MalformedPayloadError("Payload must be a JSON object")
    try:
        return InboundChatMessage.model_validate(data)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid chat event: {e.error_count()} error(s)") from e


class MessageRelay:
    """
    Validates, persists, stages attachments for, and fans out chat messages.

    Usage:
        relay = MessageRelay(registry, SqlMessageStore(), LocalBlobStore(dir))
        result = await relay.handle(connection, raw_frame)
        ...
        await relay.drain()   # on shutdown
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        store: "MessageStore",
        blob_store: "BlobStore",
        metrics: "MetricsCollector | None" = None,
        await_attachment_write: bool = False,
        name_generator: StoredNameGenerator | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._blob_store = blob_store
        self._metrics = metrics
        self._await_attachment_write = await_attachment_write
        self._names = name_generator or StoredNameGenerator()
        self._pending_writes: set[asyncio.Task] = set()

    @property
    def pending_writes(self) -> int:
        """Attachment writes still in flight."""
        return len(self._pending_writes)

    async def handle(self, connection: "Connection", raw: str) -> RelayResult:
        """
        Run one inbound frame through the pipeline.

        Raises:
            MalformedPayloadError: If the frame or its attachment data cannot
                be parsed. Nothing has been persisted or forwarded.
        """
        event = parse_chat_message(raw)

        if not event.recipient or not event.has_content:
            logger.debug(
                "Empty chat event discarded",
                payload=sanitize_log_data(raw, WSConstants.LOG_PAYLOAD_PREVIEW),
            )
            self._count("increment_discarded")
            return RelayResult(RelayOutcome.DISCARDED)

        if not connection.is_authenticated:
            logger.warning("Chat event from anonymous connection rejected", recipient=event.recipient)
            self._count("increment_rejected_unauthenticated")
            await send_to_connection(
                connection,
                error_event(ERROR_UNAUTHENTICATED, "Sign in to send messages"),
            )
            return RelayResult(RelayOutcome.REJECTED_UNAUTHENTICATED)

        stored_name = payload = None
        if event.file is not None:
            stored_name, payload = self._prepare_attachment(event.file.name, event.file.data)

        try:
            message = await self._store.create(
                sender=connection.user_id,
                recipient=event.recipient,
                text=event.text,
                file=stored_name,
            )
        except MessageStoreError as e:
            self._count("increment_store_failed")
            await send_to_connection(
                connection,
                error_event(ERROR_MESSAGE_NOT_SAVED, str(e)),
            )
            return RelayResult(RelayOutcome.STORE_FAILED)

        if stored_name is not None:
            await self._write_attachment(stored_name, payload)

        delivered = await self.forward(message)
        self._count("increment_relayed")
        logger.info(
            "Message relayed",
            message_id=message.id,
            sender=message.sender,
            recipient=message.recipient,
            has_file=stored_name is not None,
            delivered=delivered,
        )
        return RelayResult(RelayOutcome.DELIVERED, message=message, delivered=delivered)

    async def forward(self, message: StoredMessage) -> int:
        """
        Send the delivery event to every live session of the recipient.

        Closed targets are skipped and never retried.

        Returns:
            Number of sessions the event was handed to.
        """
        targets = self._registry.find_by_user_id(message.recipient)
        if not targets:
            return 0
        wire = DeliveryEvent(
            text=message.text,
            sender=message.sender,
            recipient=message.recipient,
            file=message.file,
            id=message.id,
        ).to_wire()
        results = await asyncio.gather(*(send_to_connection(c, wire) for c in targets))
        delivered = sum(1 for ok in results if ok)
        if self._metrics is not None:
            self._metrics.add_deliveries(delivered, len(results) - delivered)
        return delivered

    # =========================================================================
    # Attachments
    # =========================================================================

    def _prepare_attachment(self, name: str, data: str) -> tuple[str, bytes]:
        payload = decode_attachment_data(data)
        return self._names.for_file(name), payload

    async def _write_attachment(self, stored_name: str, payload: bytes) -> None:
        self._count("increment_attachments")
        if self._await_attachment_write:
            try:
                await self._blob_store.write(stored_name, payload)
            except Exception as e:
                self._log_write_failure(stored_name, e)
            return

        task = asyncio.create_task(
            self._blob_store.write(stored_name, payload),
            name=f"attachment_write:{stored_name}",
        )
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log_write_failure(task.get_name().partition(":")[2], exc)

    def _log_write_failure(self, stored_name: str, exc: BaseException) -> None:
        self._count("increment_attachment_write_failed")
        logger.error(
            "Attachment write failed",
            stored_name=stored_name,
            error=str(exc),
        )

    async def drain(self, timeout: float = WSConstants.SHUTDOWN_DRAIN_TIMEOUT) -> int:
        """
        Wait for in-flight attachment writes.

        Returns:
            Number of writes still pending after the timeout (cancelled).
        """
        if not self._pending_writes:
            return 0
        _, pending = await asyncio.wait(set(self._pending_writes), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Attachment writes abandoned on shutdown", count=len(pending))
        return len(pending)

    def _count(self, method: str) -> None:
        if self._metrics is not None:
            getattr(self._metrics, method)()

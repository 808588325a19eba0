"""
Presence Broadcaster.

Publishes the full roster of reachable users to every live connection
whenever registry membership changes. Each publish is a complete
replacement roster, never a diff.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket
    from chat_gateway.components.connection.connection import Connection
    from chat_gateway.components.connection.registry import ConnectionRegistry
    from chat_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette does not expose transitional states, so a socket may still
    look connected briefly after the peer went away; the send then fails
    and is handled by the caller.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


async def send_to_connection(connection: "Connection", text: str) -> bool:
    """
    Send a text frame, skipping closed sockets.

    Returns:
        True if the frame was handed to the transport, False if the target
        was closed or the send failed. Never raises for transport errors.
    """
    if not connection.is_alive or not is_ws_connected(connection.websocket):
        return False
    try:
        await connection.websocket.send_text(text)
        return True
    except Exception as e:
        logger.debug(
            "Send to closed connection skipped",
            connection_id=connection.connection_id,
            error=str(e),
        )
        return False


def build_roster(connections: Iterable["Connection"]) -> list[dict[str, Any]]:
    """
    Unique {userId, username} pairs for every connection.

    A user with several sessions appears once. Anonymous connections show
    up as a single {userId: null, username: null} entry.
    """
    seen: set[tuple[str | None, str | None]] = set()
    roster: list[dict[str, Any]] = []
    for connection in connections:
        key = (connection.user_id, connection.username)
        if key in seen:
            continue
        seen.add(key)
        roster.append(connection.presence_entry())
    return roster


class PresenceBroadcaster:
    """
    Sends roster snapshots to every connection in the registry.

    The roster is computed synchronously when publish() is called, so it
    reflects registry state at the mutation that triggered it. Sends are
    serialized through a FIFO lock, so publishes reach each socket in
    mutation order.

    Usage:
        broadcaster = PresenceBroadcaster(registry, metrics)
        registry.register(connection)
        await broadcaster.publish()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector | None" = None,
    ) -> None:
        self._registry = registry
        self._metrics = metrics
        self._send_lock = asyncio.Lock()

    def snapshot_message(self) -> str:
        """Serialized presence event for the current registry state."""
        return json.dumps({"online": build_roster(self._registry.snapshot())})

    async def publish(self) -> int:
        """
        Publish the current roster to all registered connections,
        including the one whose change triggered the publish.

        Returns:
            Number of connections the roster was sent to.
        """
        message = self.snapshot_message()
        async with self._send_lock:
            # Copy: a failed send can trigger a disconnect that mutates the registry
            targets = self._registry.snapshot()
            results = await asyncio.gather(
                *(send_to_connection(c, message) for c in targets)
            )

        sent = sum(1 for ok in results if ok)
        skipped = len(results) - sent
        if self._metrics is not None:
            self._metrics.record_presence_publish(sent, skipped)
        logger.debug("Presence published", recipients=sent, skipped=skipped)
        return sent

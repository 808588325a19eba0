"""
Chat Connection Manager.

Thin orchestrator composing the gateway components:
- ConnectionRegistry: the live connection set
- HeartbeatSupervisor: liveness probes and reaping
- PresenceBroadcaster: roster publishes on every membership change
- MessageRelay: chat event pipeline

Every registry removal goes through _remove_and_publish, so a graceful
close racing a heartbeat reap publishes presence exactly once.
"""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import settings
from shared.infrastructure.storage import LocalBlobStore

from chat_gateway.components.auth.strategies import AuthResult
from chat_gateway.components.broadcast.presence import PresenceBroadcaster, is_ws_connected
from chat_gateway.components.connection.connection import Connection
from chat_gateway.components.connection.heartbeat import (
    HeartbeatSupervisor,
    handle_heartbeat,
    is_pong,
)
from chat_gateway.components.connection.registry import ConnectionRegistry
from chat_gateway.components.core.constants import WSCloseCode, WSConstants
from chat_gateway.components.data.message_repository import SqlMessageStore
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.components.relay.relay import MessageRelay, RelayResult

if TYPE_CHECKING:
    from shared.infrastructure.storage import BlobStore
    from chat_gateway.components.data.message_repository import MessageStore

logger = get_logger(__name__)


class ConnectionManager:
    """
    Manages chat connections from accept to removal.

    Configuration from settings:
    - ws_heartbeat_interval: Seconds between liveness probes (default: 5)
    - ws_heartbeat_death_timeout: Seconds to wait for the pong (default: 1)
    - upload_dir: Where attachments are written
    - relay_await_attachment_write: Finish attachment writes before forwarding

    Usage:
        manager = ConnectionManager()
        await manager.connect(connection, auth_result)
        await manager.handle_payload(connection, data)
        await manager.disconnect(connection)
    """

    def __init__(
        self,
        store: "MessageStore | None" = None,
        blob_store: "BlobStore | None" = None,
        heartbeat_interval: float | None = None,
        heartbeat_death_timeout: float | None = None,
        await_attachment_write: bool | None = None,
    ) -> None:
        self._metrics = MetricsCollector()
        self._registry = ConnectionRegistry()
        self._presence = PresenceBroadcaster(self._registry, self._metrics)
        self._heartbeat = HeartbeatSupervisor(
            on_dead=self.reap,
            interval=heartbeat_interval or settings.ws_heartbeat_interval,
            death_timeout=heartbeat_death_timeout or settings.ws_heartbeat_death_timeout,
        )
        self._relay = MessageRelay(
            registry=self._registry,
            store=store or SqlMessageStore(),
            blob_store=blob_store or LocalBlobStore(settings.upload_dir),
            metrics=self._metrics,
            await_attachment_write=(
                settings.relay_await_attachment_write
                if await_attachment_write is None
                else await_attachment_write
            ),
        )

    # =========================================================================
    # Component access
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def heartbeat(self) -> HeartbeatSupervisor:
        return self._heartbeat

    @property
    def presence(self) -> PresenceBroadcaster:
        return self._presence

    @property
    def relay(self) -> MessageRelay:
        return self._relay

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self, connection: Connection, auth: AuthResult) -> None:
        """
        Admit an accepted connection.

        Binds the verified identity (if any), registers the connection,
        starts its heartbeat cycle and publishes presence.
        """
        if auth.success:
            connection.bind_identity(auth.user_id, auth.username)
            self._metrics.increment_connections_authenticated()

        self._registry.register(connection)
        self._metrics.increment_connections_accepted()
        self._heartbeat.start(connection)
        logger.info(
            "Connection admitted",
            user_id=connection.user_id,
            total=self._registry.total_connections,
        )
        await self._presence.publish()

    async def disconnect(self, connection: Connection) -> None:
        """Graceful close: stop the heartbeat, remove, publish. Idempotent."""
        self._heartbeat.stop(connection)
        if await self._remove_and_publish(connection):
            self._metrics.increment_connections_closed()

    async def reap(self, connection: Connection) -> None:
        """
        Forced termination of a connection that missed its pong.

        Called by HeartbeatSupervisor exactly once per dead connection.
        """
        connection.is_alive = False
        try:
            await connection.websocket.close(
                code=WSCloseCode.GOING_AWAY,
                reason="Heartbeat timeout",
            )
        except Exception as e:
            logger.debug("Close of dead connection failed", error=str(e))

        audit_ws_connection(
            event_type="REAPED",
            endpoint=WSConstants.ENDPOINT_PATH,
            user_id=connection.user_id,
            reason="heartbeat_timeout",
        )
        if await self._remove_and_publish(connection):
            self._metrics.increment_connections_reaped()

    async def _remove_and_publish(self, connection: Connection) -> bool:
        if not self._registry.remove(connection):
            return False
        await self._presence.publish()
        return True

    # =========================================================================
    # Inbound frames
    # =========================================================================

    async def handle_control(self, connection: Connection, data: str) -> bool:
        """
        Handle heartbeat frames: pongs close the current cycle and client
        pings are answered.

        Returns:
            True if the frame was a heartbeat frame and has been consumed.
        """
        if is_pong(data):
            self._heartbeat.acknowledge(connection)
            return True
        return await handle_heartbeat(connection.websocket, data)

    async def handle_payload(self, connection: Connection, data: str) -> RelayResult | None:
        """
        Route one inbound text frame: heartbeat frames first, everything
        else to the relay.

        Raises:
            MalformedPayloadError: Propagated from the relay.
        """
        if await self.handle_control(connection, data):
            return None
        return await self._relay.handle(connection, data)

    # =========================================================================
    # Shutdown and stats
    # =========================================================================

    async def shutdown(self) -> None:
        """Stop heartbeats, drain attachment writes and close remaining sockets."""
        await self._heartbeat.shutdown()
        await self._relay.drain()

        connections = self._registry.snapshot()
        for connection in connections:
            self._registry.remove(connection)
        await asyncio.gather(
            *(self._close_quietly(c) for c in connections),
            return_exceptions=True,
        )
        logger.info("Connection manager shut down", closed=len(connections))

    async def _close_quietly(self, connection: Connection) -> None:
        if not is_ws_connected(connection.websocket):
            return
        try:
            await connection.websocket.close(
                code=WSCloseCode.GOING_AWAY,
                reason="Server shutting down",
            )
        except Exception as e:
            logger.debug("Close on shutdown failed", error=str(e))

    def get_stats(self) -> dict[str, Any]:
        """Aggregated statistics for the health endpoint."""
        return {
            **self._registry.get_stats(),
            "heartbeat": self._heartbeat.get_stats(),
            "pending_attachment_writes": self._relay.pending_writes,
            "metrics": self._metrics.get_snapshot(),
        }

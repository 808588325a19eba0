"""
Single-concern mixins composed into WebSocketEndpointBase.

    MessageValidationMixin    frame size limit (closes 1009)
    OriginValidationMixin     Origin allow-list
    ConnectionLifecycleMixin  lifecycle log lines and the audit trail
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from shared.config.logging import audit_ws_connection, get_logger

from chat_gateway.components.core.constants import WSCloseCode

if TYPE_CHECKING:
    from chat_gateway.components.connection.connection import Connection

logger = get_logger(__name__)


# =============================================================================
# Protocols for mixin dependencies
# =============================================================================


class HasWebSocket(Protocol):
    """What the mixins expect from the endpoint they are mixed into."""

    websocket: WebSocket
    endpoint_name: str
    connection: "Connection | None"

    def get_origin(self) -> str | None: ...


# =============================================================================
# MessageValidationMixin
# =============================================================================


class MessageValidationMixin:
    """Rejects frames above settings.ws_max_message_size."""

    async def validate_message_size(self: HasWebSocket, data: str) -> bool:
        """Return False (after closing the socket) when ``data`` is oversized."""
        from shared.config.settings import settings

        limit = settings.ws_max_message_size
        if len(data) <= limit:
            return True

        logger.warning("Frame over size limit", size=len(data), limit=limit)
        await self.websocket.close(code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large")
        return False


# =============================================================================
# OriginValidationMixin
# =============================================================================


class OriginValidationMixin:
    def validate_origin(self: HasWebSocket) -> bool:
        """Check the handshake Origin against the configured allow-list."""
        from shared.config.settings import settings
        from chat_gateway.components.core.constants import validate_websocket_origin

        return validate_websocket_origin(self.get_origin(), settings)

    def get_origin(self: HasWebSocket) -> str | None:
        return self.websocket.headers.get("origin")


# =============================================================================
# ConnectionLifecycleMixin
# =============================================================================


class ConnectionLifecycleMixin:
    """
    Mixin for connection lifecycle logging.

    Every event is written to the application log and to the security
    audit log.
    """

    def _audit(self: HasWebSocket, event_type: str, reason: str | None = None) -> None:
        connection = self.connection
        audit_ws_connection(
            event_type=event_type,
            endpoint=self.endpoint_name,
            user_id=connection.user_id if connection else None,
            origin=self.get_origin(),
            reason=reason,
        )

    def log_connect(self: HasWebSocket) -> None:
        """Log connection event."""
        logger.info(
            "Chat connected",
            **(self.connection.to_log_dict() if self.connection else {}),
        )
        self._audit("CONNECT")

    def log_disconnect(self: HasWebSocket, reason: str = "client_disconnect") -> None:
        """Log disconnection event."""
        logger.info(
            "Chat disconnected",
            reason=reason,
            **(self.connection.to_log_dict() if self.connection else {}),
        )
        self._audit("DISCONNECT", reason=reason)

    def log_connect_rejected(self: HasWebSocket, reason: str) -> None:
        """Log connection rejection event."""
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            reason=reason,
        )
        self._audit("CONNECT_REJECTED", reason=reason)

    def log_auth_failed(self: HasWebSocket, reason: str | None) -> None:
        """Handshake verification failed; the connection continues anonymous."""
        logger.info("Handshake unauthenticated, continuing anonymous", reason=reason)
        self._audit("AUTH_FAILED", reason=reason)


__all__ = [
    "MessageValidationMixin",
    "OriginValidationMixin",
    "ConnectionLifecycleMixin",
    "HasWebSocket",
]

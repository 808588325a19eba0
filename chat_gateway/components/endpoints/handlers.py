"""
Concrete WebSocket Endpoint Implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket

from shared.config.logging import get_logger

from chat_gateway.components.auth.strategies import (
    AuthResult,
    AuthStrategy,
    CookieJWTAuthStrategy,
)
from chat_gateway.components.core.constants import WSConstants
from chat_gateway.components.endpoints.base import WebSocketEndpointBase
from chat_gateway.components.relay.errors import MalformedPayloadError

if TYPE_CHECKING:
    from chat_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class ChatEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for chat clients.

    Features:
    - Session JWT from the `token` cookie (anonymous on failure)
    - Presence roster on every membership change
    - Server-driven heartbeat, client pong handling
    - Chat message relay with inline attachments
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        auth_strategy: AuthStrategy | None = None,
    ):
        super().__init__(
            websocket=websocket,
            manager=manager,
            endpoint_name=WSConstants.ENDPOINT_PATH,
        )
        self._auth_strategy = auth_strategy or CookieJWTAuthStrategy()

    async def authenticate(self) -> AuthResult:
        return await self._auth_strategy.authenticate(self.websocket)

    async def register_connection(self, auth: AuthResult) -> None:
        await self.manager.connect(self.connection, auth)

    async def unregister_connection(self) -> None:
        await self.manager.disconnect(self.connection)

    async def handle_control(self, data: str) -> bool:
        return await self.manager.handle_control(self.connection, data)

    async def handle_message(self, data: str) -> bool:
        """Route the frame through the manager; malformed frames close this connection."""
        try:
            await self.manager.handle_payload(self.connection, data)
        except MalformedPayloadError as e:
            await self._close_malformed(e, data)
            return False
        return True

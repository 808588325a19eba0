"""
WebSocket Endpoint Base Class.

Runs the lifecycle of one duplex connection: origin check, handshake
authentication, admission, receive loop and unregistration.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from shared.infrastructure.correlation import connection_id_var

from chat_gateway.components.auth.strategies import AuthResult
from chat_gateway.components.connection.connection import Connection
from chat_gateway.components.core.constants import WSCloseCode
from chat_gateway.components.core.context import sanitize_log_data
from chat_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)
from chat_gateway.components.relay.errors import MalformedPayloadError

if TYPE_CHECKING:
    from chat_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class WebSocketEndpointBase(
    MessageValidationMixin,
    OriginValidationMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for WebSocket endpoints.

    Subclasses implement:
    - authenticate(): Verify handshake metadata, return AuthResult
    - register_connection(): Admit the connection with ConnectionManager
    - unregister_connection(): Remove it on disconnect
    - handle_message(): Process one text frame (run by the dispatch worker)

    handle_control() may be overridden to consume frames on the reader side.

    Usage:
        endpoint = ChatEndpoint(websocket, manager)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str,
    ):
        """
        Args:
            websocket: The WebSocket connection.
            manager: ConnectionManager instance.
            endpoint_name: Name for logging (e.g., "/ws/chat").
        """
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name

        self.connection: Connection | None = None
        self._is_running = False

    @abstractmethod
    async def authenticate(self) -> AuthResult:
        """Verify handshake metadata. Must not raise on bad credentials."""
        pass

    @abstractmethod
    async def register_connection(self, auth: AuthResult) -> None:
        """Admit self.connection with the ConnectionManager."""
        pass

    @abstractmethod
    async def unregister_connection(self) -> None:
        """Remove self.connection on disconnect."""
        pass

    @abstractmethod
    async def handle_message(self, data: str) -> bool:
        """
        Handle one text frame.

        Returns:
            True to keep reading, False if the connection was closed.
        """
        pass

    async def run(self) -> None:
        """
        Main entry point - run the WebSocket endpoint.

        Handles the complete lifecycle:
        1. Validate origin
        2. Authenticate the handshake (failure leaves the connection anonymous)
        3. Accept and register
        4. Message loop
        5. Unregister on disconnect
        """
        # Step 1: Validate origin
        if not self.validate_origin():
            self.log_connect_rejected("invalid_origin")
            self.manager.metrics.increment_rejected_origin()
            await self.websocket.close(
                code=WSCloseCode.POLICY_VIOLATION,
                reason="Origin not allowed",
            )
            return

        self.connection = Connection(websocket=self.websocket)
        token = connection_id_var.set(self.connection.connection_id)
        try:
            await self._run_connection()
        finally:
            connection_id_var.reset(token)

    async def _run_connection(self) -> None:
        # Step 2: Authenticate
        auth = await self.authenticate()
        if not auth.success:
            self.manager.metrics.increment_auth_failed()
            self.log_auth_failed(auth.audit_reason)

        # Step 3: Accept and register
        await self.websocket.accept()
        try:
            await self.register_connection(auth)
        except Exception as e:
            logger.error(
                "Unexpected error during connection",
                endpoint=self.endpoint_name,
                error=str(e),
                exc_info=True,
            )
            await self.unregister_connection()
            await self._close_quietly(WSCloseCode.SERVER_ERROR, "Internal error")
            return

        self.log_connect()

        # Step 4: Message loop
        self._is_running = True
        try:
            await self._message_loop()
        except WebSocketDisconnect as e:
            self.log_disconnect(f"client_disconnect:{e.code}")
        except Exception as e:
            logger.error(
                "Unexpected error in message loop",
                endpoint=self.endpoint_name,
                error=str(e),
                exc_info=True,
            )
            await self._close_quietly(WSCloseCode.SERVER_ERROR, "Internal error")
        finally:
            # Step 5: Unregister
            self._is_running = False
            await self.unregister_connection()

    async def _message_loop(self) -> None:
        """
        Read frames until the peer leaves or a handler closes the socket.

        The reader answers heartbeat frames itself and queues everything
        else for a single dispatch worker. A slow relay (store or awaited
        attachment write) therefore never leaves a pong unread past the
        death timeout, while chat frames from one connection are still
        handled one at a time, in arrival order.
        """
        inbox: asyncio.Queue[str | None] = asyncio.Queue()
        worker = asyncio.create_task(
            self._dispatch_worker(inbox),
            name=f"dispatch:{self.connection.connection_id}",
        )
        try:
            await self._read_frames(inbox, worker)
        finally:
            inbox.put_nowait(None)
            try:
                await asyncio.wait({worker})
            except asyncio.CancelledError:
                worker.cancel()
                raise

    async def _read_frames(self, inbox: "asyncio.Queue[str | None]", worker: asyncio.Task) -> None:
        while self._is_running and self.connection.is_alive:
            receive = asyncio.ensure_future(self._receive_text())
            try:
                await asyncio.wait({receive, worker}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                receive.cancel()
                raise
            if not receive.done():
                # The worker stopped (it closed the socket)
                receive.cancel()
                return

            try:
                data = receive.result()
            except MalformedPayloadError as e:
                await self._close_malformed(e, "")
                return

            if not await self.validate_message_size(data):
                return

            if await self.handle_control(data):
                continue
            inbox.put_nowait(data)

    async def _dispatch_worker(self, inbox: "asyncio.Queue[str | None]") -> None:
        while (data := await inbox.get()) is not None:
            try:
                keep_going = await self.handle_message(data)
            except Exception as e:
                logger.error(
                    "Unexpected error handling message",
                    endpoint=self.endpoint_name,
                    error=str(e),
                    exc_info=True,
                )
                await self._close_quietly(WSCloseCode.SERVER_ERROR, "Internal error")
                return
            if not keep_going:
                return

    async def handle_control(self, data: str) -> bool:
        """
        Handle a control frame on the reader side.

        Returns:
            True if the frame was consumed and must not reach handle_message.
        """
        return False

    async def _receive_text(self) -> str:
        """
        Receive one frame as text.

        Raises:
            WebSocketDisconnect: When the peer disconnected or the socket
                was closed by the server (e.g. heartbeat reap).
            MalformedPayloadError: For binary frames that are not UTF-8.
        """
        try:
            message = await self.websocket.receive()
        except RuntimeError as e:
            # Socket already closed on our side
            raise WebSocketDisconnect(code=WSCloseCode.GOING_AWAY, reason=str(e)) from e

        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(
                code=message.get("code", WSCloseCode.NORMAL),
                reason=message.get("reason"),
            )

        text = message.get("text")
        if text is not None:
            return text
        try:
            return (message.get("bytes") or b"").decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayloadError("Binary frame is not valid UTF-8") from e

    async def _close_malformed(self, error: MalformedPayloadError, data: str) -> None:
        logger.warning(
            "Malformed payload, closing connection",
            endpoint=self.endpoint_name,
            error=str(error),
            payload=sanitize_log_data(data),
        )
        self.manager.metrics.increment_malformed()
        await self._close_quietly(WSCloseCode.UNSUPPORTED_DATA, "Malformed payload")

    async def _close_quietly(self, code: int, reason: str) -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Close failed", error=str(e))

"""
Connection management components.

Handles connection lifecycle: the connection record, the registry and the
heartbeat supervisor.
"""

from chat_gateway.components.connection.connection import (
    Connection,
    IdentityAlreadyBoundError,
)
from chat_gateway.components.connection.registry import ConnectionRegistry
from chat_gateway.components.connection.heartbeat import (
    HeartbeatState,
    HeartbeatSupervisor,
    handle_heartbeat,
    is_ping,
    is_pong,
)

__all__ = [
    "Connection",
    "IdentityAlreadyBoundError",
    "ConnectionRegistry",
    "HeartbeatState",
    "HeartbeatSupervisor",
    "handle_heartbeat",
    "is_ping",
    "is_pong",
]

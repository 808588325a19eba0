"""
Chat Gateway Components.

Organized into domain-specific modules:
- core/       - Constants, close codes, log sanitization
- connection/ - Connection record, registry, heartbeat supervisor
- auth/       - Handshake authentication strategies
- broadcast/  - Presence roster publishing
- relay/      - Chat message pipeline and attachment staging
- data/       - Message and user repositories
- endpoints/  - WebSocket endpoint lifecycle
- metrics/    - Counters for the health endpoint
"""

from chat_gateway.components.core.constants import WSCloseCode, WSConstants
from chat_gateway.components.connection import (
    Connection,
    ConnectionRegistry,
    HeartbeatState,
    HeartbeatSupervisor,
)
from chat_gateway.components.auth import AuthResult, CookieJWTAuthStrategy
from chat_gateway.components.broadcast import PresenceBroadcaster
from chat_gateway.components.relay import MalformedPayloadError, MessageRelay
from chat_gateway.components.data import MessageStoreError, SqlMessageStore, UserRepository
from chat_gateway.components.metrics import MetricsCollector

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "Connection",
    "ConnectionRegistry",
    "HeartbeatState",
    "HeartbeatSupervisor",
    "AuthResult",
    "CookieJWTAuthStrategy",
    "PresenceBroadcaster",
    "MalformedPayloadError",
    "MessageRelay",
    "MessageStoreError",
    "SqlMessageStore",
    "UserRepository",
    "MetricsCollector",
]

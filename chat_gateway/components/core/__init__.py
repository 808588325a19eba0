"""Core components: constants and log sanitization."""

from chat_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    MSG_PING_PLAIN,
    MSG_PONG_PLAIN,
    MSG_PING_JSON,
    MSG_PONG_JSON,
    DEFAULT_ALLOWED_ORIGINS,
    validate_websocket_origin,
)
from chat_gateway.components.core.context import sanitize_log_data

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "MSG_PING_PLAIN",
    "MSG_PONG_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG_JSON",
    "DEFAULT_ALLOWED_ORIGINS",
    "validate_websocket_origin",
    "sanitize_log_data",
]

"""
Chat Gateway Constants.

Centralized constants with documentation explaining each value.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "MSG_PING_PLAIN",
    "MSG_PONG_PLAIN",
    "MSG_PING_JSON",
    "MSG_PONG_JSON",
    "DEFAULT_ALLOWED_ORIGINS",
    "parse_allowed_origins",
    "validate_websocket_origin",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or heartbeat reap
    PROTOCOL_ERROR = 1002  # Protocol error
    UNSUPPORTED_DATA = 1003  # Payload could not be parsed as a chat event
    POLICY_VIOLATION = 1008  # Generic policy violation (e.g. rejected origin)
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error


class WSConstants:
    """
    Chat Gateway operational constants.

    These are defaults for values that are not exposed through settings.
    Heartbeat timing lives in settings (ws_heartbeat_interval,
    ws_heartbeat_death_timeout) because deployments behind proxies tune it.
    """

    # ENDPOINT_PATH: the single duplex endpoint chat clients connect to
    ENDPOINT_PATH: Final[str] = "/ws/chat"

    # LOG_PAYLOAD_PREVIEW: characters of a rejected payload kept in logs.
    # Attachments are inline base64, so full payloads never go to the log.
    LOG_PAYLOAD_PREVIEW: Final[int] = 100

    # SHUTDOWN_DRAIN_TIMEOUT: seconds to wait for pending attachment writes
    # on shutdown before giving up on them.
    SHUTDOWN_DRAIN_TIMEOUT: Final[float] = 5.0


# Liveness probe protocol. The server probes with the JSON ping; clients may
# answer with either pong form. Client-initiated pings get a JSON pong.
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PONG_PLAIN: Final[str] = "pong"
MSG_PING_JSON: Final[str] = '{"type":"ping"}'
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'


# Default development origins
DEFAULT_ALLOWED_ORIGINS: Final[tuple[str, ...]] = (
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
)


def parse_allowed_origins(settings: object) -> list[str]:
    """Return the configured origin allow-list, or the development defaults."""
    allowed_origins_str = getattr(settings, "allowed_origins", None)
    if allowed_origins_str:
        return [o.strip() for o in allowed_origins_str.split(",") if o.strip()]
    return list(DEFAULT_ALLOWED_ORIGINS)


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Decide whether a handshake's Origin header may connect.

    Browsers always send Origin on WebSocket handshakes, so a missing
    header means a non-browser client; those are let through in
    development only.
    """
    from shared.config.logging import get_logger

    if not origin:
        allowed_missing = getattr(settings, "environment", "production") == "development"
        if not allowed_missing:
            get_logger(__name__).warning("Handshake without Origin refused outside development")
        return allowed_missing

    allowed = parse_allowed_origins(settings)
    if origin not in allowed:
        get_logger(__name__).warning("Handshake origin not allowed", origin=origin, allowed=len(allowed))
        return False
    return True

"""
Broadcast components: presence roster publishing and safe sends.
"""

from chat_gateway.components.broadcast.presence import (
    PresenceBroadcaster,
    build_roster,
    is_ws_connected,
    send_to_connection,
)

__all__ = [
    "PresenceBroadcaster",
    "build_roster",
    "is_ws_connected",
    "send_to_connection",
]

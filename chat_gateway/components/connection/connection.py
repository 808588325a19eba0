"""
Connection record.

One Connection per live WebSocket. Identity and liveness live here
instead of being hung off the transport object; heartbeat timer handles
are kept by HeartbeatSupervisor in a side index keyed by connection_id.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import WebSocket


class IdentityAlreadyBoundError(RuntimeError):
    """Raised when a connection's identity is bound a second time."""


def _new_connection_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class Connection:
    """
    A single duplex session.

    Attributes:
        websocket: The underlying transport.
        connection_id: Unique ID generated at accept time.
        user_id: Bound user ID, None while anonymous.
        username: Bound display name, None while anonymous.
        is_alive: False once the heartbeat has reaped the connection.

    Equality and hashing are by identity so connections can live in sets.
    """

    websocket: "WebSocket"
    connection_id: str = field(default_factory=_new_connection_id)
    user_id: str | None = None
    username: str | None = None
    is_alive: bool = True

    @property
    def is_authenticated(self) -> bool:
        """Whether the handshake bound an identity."""
        return self.user_id is not None

    def bind_identity(self, user_id: str, username: str) -> None:
        """
        Attach the verified identity. Allowed once per connection.

        Raises:
            IdentityAlreadyBoundError: If an identity is already bound.
        """
        if self.user_id is not None:
            raise IdentityAlreadyBoundError(
                f"Connection {self.connection_id} already bound to user {self.user_id}"
            )
        self.user_id = user_id
        self.username = username

    def presence_entry(self) -> dict[str, Any]:
        """Roster entry for this connection."""
        return {"userId": self.user_id, "username": self.username}

    def to_log_dict(self) -> dict[str, Any]:
        """Fields attached to lifecycle log lines."""
        return {
            "connection_id": self.connection_id,
            "user_id": self.user_id,
            "authenticated": self.is_authenticated,
        }

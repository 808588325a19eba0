"""
Connection Registry - the authoritative set of live connections.

Maintains the connection set plus a user index so the relay can find every
session of a recipient. All mutations happen on the event loop, so no
locks are needed; readers get copies so a broadcast can iterate while a
disconnect handler removes entries.
"""

from __future__ import annotations

from types import MappingProxyType

from shared.config.logging import get_logger

from chat_gateway.components.connection.connection import Connection

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    In-memory registry of live connections.

    Indices maintained:
    - by id: connection_id -> Connection
    - by user: user_id -> set[connection_id] (a user may hold several sessions)

    Anonymous connections are registered but not indexed by user.
    """

    def __init__(self) -> None:
        """Initialize empty indices."""
        self._connections: dict[str, Connection] = {}
        self._by_user: dict[str, set[str]] = {}

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def by_user(self) -> MappingProxyType[str, set[str]]:
        """Connection IDs indexed by user ID (immutable view)."""
        return MappingProxyType(self._by_user)

    @property
    def total_connections(self) -> int:
        """Total number of registered connections."""
        return len(self._connections)

    def __contains__(self, connection: Connection) -> bool:
        return self._connections.get(connection.connection_id) is connection

    def __len__(self) -> int:
        return len(self._connections)

    # =========================================================================
    # Mutations
    # =========================================================================

    def register(self, connection: Connection) -> None:
        """Add a connection. Registering the same connection twice is a no-op."""
        self._connections[connection.connection_id] = connection
        if connection.user_id is not None:
            self._by_user.setdefault(connection.user_id, set()).add(connection.connection_id)

    def remove(self, connection: Connection) -> bool:
        """
        Remove a connection.

        Graceful close and heartbeat reap can both try to remove the same
        connection; only the first call has any effect.

        Returns:
            True if the connection was registered and is now removed,
            False if it was already gone.
        """
        if self._connections.get(connection.connection_id) is not connection:
            return False
        del self._connections[connection.connection_id]

        if connection.user_id is not None and connection.user_id in self._by_user:
            sessions = self._by_user[connection.user_id]
            sessions.discard(connection.connection_id)
            if not sessions:
                del self._by_user[connection.user_id]
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, connection_id: str) -> Connection | None:
        """Get a connection by ID."""
        return self._connections.get(connection_id)

    def snapshot(self) -> list[Connection]:
        """Return a copy of the current connection set."""
        return list(self._connections.values())

    def find_by_user_id(self, user_id: str) -> list[Connection]:
        """Return every live session bound to user_id (possibly none)."""
        return [
            self._connections[connection_id]
            for connection_id in self._by_user.get(user_id, set())
            if connection_id in self._connections
        ]

    def get_active_user_ids(self) -> set[str]:
        """Get set of user IDs with at least one live connection."""
        return set(self._by_user.keys())

    def get_stats(self) -> dict:
        """Get registry statistics for monitoring."""
        return {
            "total_connections": len(self._connections),
            "users_online": len(self._by_user),
            "anonymous_connections": sum(
                1 for c in self._connections.values() if c.user_id is None
            ),
        }

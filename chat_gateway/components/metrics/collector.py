"""
Metrics Collector for the Chat Gateway.

Centralizes counters for observability; surfaced by /ws/health.
All callers run on the event loop, increments are plain attribute updates.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any


@dataclass
class ConnectionMetrics:
    """Metrics for connection lifecycle."""
    accepted: int = 0
    authenticated: int = 0
    auth_failed: int = 0
    rejected_origin: int = 0
    closed: int = 0
    reaped: int = 0
    malformed: int = 0


@dataclass
class PresenceMetrics:
    """Metrics for roster publishes."""
    published: int = 0
    recipients: int = 0
    recipients_skipped: int = 0


@dataclass
class RelayMetrics:
    """Metrics for the message relay."""
    relayed: int = 0
    discarded: int = 0
    rejected_unauthenticated: int = 0
    store_failed: int = 0
    deliveries: int = 0
    deliveries_skipped: int = 0
    attachments: int = 0
    attachment_write_failed: int = 0


class MetricsCollector:
    """
    Counter collection for the gateway.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_relayed()
        stats = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        self._connection = ConnectionMetrics()
        self._presence = PresenceMetrics()
        self._relay = RelayMetrics()

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connections_accepted(self) -> None:
        self._connection.accepted += 1

    def increment_connections_authenticated(self) -> None:
        self._connection.authenticated += 1

    def increment_auth_failed(self) -> None:
        self._connection.auth_failed += 1

    def increment_rejected_origin(self) -> None:
        self._connection.rejected_origin += 1

    def increment_connections_closed(self) -> None:
        self._connection.closed += 1

    def increment_connections_reaped(self) -> None:
        self._connection.reaped += 1

    def increment_malformed(self) -> None:
        self._connection.malformed += 1

    # ==========================================================================
    # Presence Metrics
    # ==========================================================================

    def record_presence_publish(self, recipients: int, skipped: int) -> None:
        """Record one roster publish and its fan-out."""
        self._presence.published += 1
        self._presence.recipients += recipients
        self._presence.recipients_skipped += skipped

    # ==========================================================================
    # Relay Metrics
    # ==========================================================================

    def increment_relayed(self) -> None:
        self._relay.relayed += 1

    def increment_discarded(self) -> None:
        self._relay.discarded += 1

    def increment_rejected_unauthenticated(self) -> None:
        self._relay.rejected_unauthenticated += 1

    def increment_store_failed(self) -> None:
        self._relay.store_failed += 1

    def add_deliveries(self, delivered: int, skipped: int = 0) -> None:
        self._relay.deliveries += delivered
        self._relay.deliveries_skipped += skipped

    def increment_attachments(self) -> None:
        self._relay.attachments += 1

    def increment_attachment_write_failed(self) -> None:
        self._relay.attachment_write_failed += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Metric names follow {category}_{metric}.
        """
        snapshot: dict[str, Any] = {}
        for category, group in (
            ("connections", self._connection),
            ("presence", self._presence),
            ("relay", self._relay),
        ):
            for name, value in asdict(group).items():
                snapshot[f"{category}_{name}"] = value
        return snapshot

    def reset(self) -> dict[str, Any]:
        """Reset all metrics and return the previous values."""
        snapshot = self.get_snapshot()
        self._connection = ConnectionMetrics()
        self._presence = PresenceMetrics()
        self._relay = RelayMetrics()
        return snapshot

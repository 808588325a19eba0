"""
Connection Correlation for log records.

Each WebSocket session gets a connection ID at accept time. The endpoint
stores it in a ContextVar so every log line emitted while serving that
session (including heartbeat timer callbacks scheduled from it) carries the ID.
"""

from contextvars import ContextVar

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Context variable for the connection being served
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


class CorrelationIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = connection_id_var.get() or "-"
        return True

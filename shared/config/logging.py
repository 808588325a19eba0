"""
Structured logging for the chat gateway.

Loggers accept keyword context next to the message:

    logger.info("Message relayed", sender=user_id, recipient=recipient)

Production renders one JSON object per line; development renders a
colored single line. Both include the ID of the WebSocket connection
being served (see shared.infrastructure.correlation).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Attribute on LogRecord holding the keyword context
CONTEXT_ATTR = "context"

_NO_CONNECTION = "-"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, CONTEXT_ATTR, None) or {}


def _record_connection(record: logging.LogRecord) -> str | None:
    connection_id = getattr(record, "connection_id", None)
    if not connection_id or connection_id == _NO_CONNECTION:
        return None
    return connection_id


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        connection_id = _record_connection(record)
        if connection_id:
            entry["connection_id"] = connection_id
        entry.update(_record_context(record))
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.module}:{record.lineno}"
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"
    GREY = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [f"{self.GREY}{clock}{self.RESET}", f"{color}{record.levelname[:4]}{self.RESET}"]

        connection_id = _record_connection(record)
        if connection_id:
            parts.append(f"{self.GREY}#{connection_id[:8]}{self.RESET}")

        parts.append(f"{record.name} {record.getMessage()}")
        context = _record_context(record)
        if context:
            parts.append(" ".join(f"{key}={value!r}" for key, value in context.items()))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods take arbitrary keyword context.

    The standard keywords (exc_info, stack_info, stacklevel, extra) keep
    their usual meaning; every other keyword ends up in the record context.
    """

    _RESERVED = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False, stacklevel=1, **context):
        if context:
            extra = {**(extra or {}), CONTEXT_ATTR: context}
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Call once at startup."""
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # uvicorn logs every websocket accept through its access logger
    for name, floor in (
        ("uvicorn.access", logging.WARNING),
        ("sqlalchemy.engine", logging.WARNING),
        ("websockets", logging.INFO),
    ):
        logging.getLogger(name).setLevel(floor)


def get_logger(name: str) -> StructuredLogger:
    """Return the structured logger for ``name``."""
    return logging.getLogger(name)  # type: ignore[return-value]


gateway_logger = get_logger("chat_gateway")

# Connection lifecycle and auth decisions go to a dedicated audit stream
security_audit_logger = get_logger("security.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    user_id: int | str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Write one audit line for a connection event.

    Args:
        event_type: CONNECT, DISCONNECT, CONNECT_REJECTED, AUTH_FAILED or REAPED.
        endpoint: Path of the WebSocket route.
        user_id: Bound user, if any.
        origin: Origin header of the handshake.
        reason: Short machine-readable cause for rejections and failures.
    """
    security_audit_logger.info(
        "ws %s",
        event_type,
        event=event_type,
        endpoint=endpoint,
        user_id=user_id,
        origin=origin,
        reason=reason,
        **extra,
    )

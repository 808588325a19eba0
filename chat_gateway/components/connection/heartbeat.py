"""
Heartbeat Supervisor for the Chat Gateway.

Runs one two-phase liveness cycle per connection:

    WAITING --probe--> PING_SENT --pong--> WAITING
                           |
                           +--death timer--> DEAD (terminal)

Timer handles (recurring probe, armed death timer) are kept in a side index
keyed by connection_id. The pong handler and the death timer both check the
cycle state before acting, and both run on the event loop, so exactly one of
them wins for a given cycle.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger

from chat_gateway.components.core.constants import (
    MSG_PING_JSON,
    MSG_PING_PLAIN,
    MSG_PONG_JSON,
    MSG_PONG_PLAIN,
)

if TYPE_CHECKING:
    from fastapi import WebSocket
    from chat_gateway.components.connection.connection import Connection

logger = get_logger(__name__)

DeadCallback = Callable[["Connection"], Awaitable[None]]


class HeartbeatState(str, Enum):
    """Liveness states of a single connection."""

    WAITING = "waiting"
    PING_SENT = "ping_sent"
    DEAD = "dead"


@dataclass
class HeartbeatCycle:
    """Per-connection FSM state and timer handles."""

    connection: "Connection"
    state: HeartbeatState = HeartbeatState.WAITING
    probe_handle: asyncio.TimerHandle | None = None
    death_handle: asyncio.TimerHandle | None = None
    probes_sent: int = 0

    def cancel_timers(self) -> None:
        if self.probe_handle is not None:
            self.probe_handle.cancel()
            self.probe_handle = None
        if self.death_handle is not None:
            self.death_handle.cancel()
            self.death_handle = None


class HeartbeatSupervisor:
    """
    Detects and reaps connections that stopped answering liveness probes.

    The supervisor owns the timers; what happens to a dead connection
    (close, registry removal, presence publish) is delegated to on_dead.

    Usage:
        supervisor = HeartbeatSupervisor(on_dead=manager.reap)
        supervisor.start(connection)
        ...
        supervisor.acknowledge(connection)   # on pong
        supervisor.stop(connection)          # on graceful close
    """

    def __init__(
        self,
        on_dead: DeadCallback,
        interval: float = 5.0,
        death_timeout: float = 1.0,
    ) -> None:
        """
        Args:
            on_dead: Coroutine run once when a connection is reaped.
            interval: Seconds between probes.
            death_timeout: Seconds to wait for the pong after a probe.
        """
        if death_timeout >= interval:
            raise ValueError("death_timeout must be shorter than interval")
        self._on_dead = on_dead
        self._interval = interval
        self._death_timeout = death_timeout
        self._cycles: dict[str, HeartbeatCycle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reaped = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def death_timeout(self) -> float:
        return self._death_timeout

    @property
    def tracked_count(self) -> int:
        """Number of connections with a running cycle."""
        return len(self._cycles)

    def state_of(self, connection: "Connection") -> HeartbeatState:
        """Current state; connections without a cycle are reported DEAD."""
        cycle = self._cycles.get(connection.connection_id)
        return cycle.state if cycle else HeartbeatState.DEAD

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, connection: "Connection") -> None:
        """Begin supervising a connection. Starting twice is a no-op."""
        if connection.connection_id in self._cycles:
            return
        cycle = HeartbeatCycle(connection=connection)
        self._cycles[connection.connection_id] = cycle
        self._schedule_probe(cycle)

    def stop(self, connection: "Connection") -> None:
        """Cancel both timers for a graceful close. The connection is not reaped."""
        cycle = self._cycles.pop(connection.connection_id, None)
        if cycle is None:
            return
        cycle.cancel_timers()
        cycle.state = HeartbeatState.DEAD

    async def shutdown(self) -> None:
        """Stop every cycle and wait for in-flight probe/reap tasks."""
        for cycle in list(self._cycles.values()):
            cycle.cancel_timers()
            cycle.state = HeartbeatState.DEAD
        self._cycles.clear()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def probe(self, connection: "Connection") -> bool:
        """
        WAITING -> PING_SENT: arm the death timer and send the probe.

        A failed send does not short-circuit the cycle; the death timer
        decides the outcome.

        Returns:
            True if a probe was issued.
        """
        cycle = self._cycles.get(connection.connection_id)
        if cycle is None or cycle.state is not HeartbeatState.WAITING:
            return False

        cycle.state = HeartbeatState.PING_SENT
        cycle.probes_sent += 1
        loop = asyncio.get_running_loop()
        cycle.death_handle = loop.call_later(
            self._death_timeout, self._on_death_timer, connection.connection_id
        )

        try:
            await connection.websocket.send_text(MSG_PING_JSON)
        except Exception as e:
            logger.debug(
                "Heartbeat probe send failed",
                connection_id=connection.connection_id,
                error=str(e),
            )
        return True

    def acknowledge(self, connection: "Connection") -> bool:
        """
        PING_SENT -> WAITING: the pong arrived before the death timer.

        Returns:
            True if this pong closed an outstanding cycle, False if there was
            nothing to acknowledge (no probe out, or already reaped).
        """
        cycle = self._cycles.get(connection.connection_id)
        if cycle is None or cycle.state is not HeartbeatState.PING_SENT:
            return False
        if cycle.death_handle is not None:
            cycle.death_handle.cancel()
            cycle.death_handle = None
        cycle.state = HeartbeatState.WAITING
        return True

    async def expire(self, connection: "Connection") -> bool:
        """
        PING_SENT -> DEAD: the death timer won. Runs on_dead exactly once.

        Returns:
            True if the connection was reaped by this call.
        """
        if not self._mark_dead(connection.connection_id):
            return False
        await self._run_on_dead(connection)
        return True

    def _mark_dead(self, connection_id: str) -> bool:
        cycle = self._cycles.get(connection_id)
        if cycle is None or cycle.state is not HeartbeatState.PING_SENT:
            return False
        cycle.state = HeartbeatState.DEAD
        cycle.cancel_timers()
        del self._cycles[connection_id]
        cycle.connection.is_alive = False
        self._reaped += 1
        logger.info(
            "Heartbeat timeout, reaping connection",
            connection_id=connection_id,
            user_id=cycle.connection.user_id,
            probes_sent=cycle.probes_sent,
        )
        return True

    async def _run_on_dead(self, connection: "Connection") -> None:
        try:
            await self._on_dead(connection)
        except Exception as e:
            logger.error(
                "Error reaping dead connection",
                connection_id=connection.connection_id,
                error=str(e),
                exc_info=True,
            )

    # =========================================================================
    # Timer callbacks
    # =========================================================================

    def _schedule_probe(self, cycle: HeartbeatCycle) -> None:
        loop = asyncio.get_running_loop()
        cycle.probe_handle = loop.call_later(
            self._interval, self._on_probe_timer, cycle.connection.connection_id
        )

    def _on_probe_timer(self, connection_id: str) -> None:
        cycle = self._cycles.get(connection_id)
        if cycle is None:
            return
        # Fixed-rate schedule, independent of how long the send takes
        self._schedule_probe(cycle)
        self._spawn(self.probe(cycle.connection))

    def _on_death_timer(self, connection_id: str) -> None:
        cycle = self._cycles.get(connection_id)
        if cycle is None:
            return
        connection = cycle.connection
        if self._mark_dead(connection_id):
            self._spawn(self._run_on_dead(connection))

    def _spawn(self, coro: Awaitable[object]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def get_stats(self) -> dict[str, float | int]:
        """Get heartbeat supervisor statistics."""
        awaiting = sum(
            1 for c in self._cycles.values() if c.state is HeartbeatState.PING_SENT
        )
        return {
            "tracked_connections": len(self._cycles),
            "awaiting_pong": awaiting,
            "reaped_total": self._reaped,
            "interval_seconds": self._interval,
            "death_timeout_seconds": self._death_timeout,
        }


# =============================================================================
# Frame classification
# =============================================================================


def _frame_type(data: str) -> str | None:
    if not data.startswith("{") or len(data) > 64:
        return None
    try:
        parsed = json.loads(data)
    except ValueError:
        return None
    if isinstance(parsed, dict) and len(parsed) == 1:
        frame_type = parsed.get("type")
        return frame_type if isinstance(frame_type, str) else None
    return None


def is_pong(data: str) -> bool:
    """True for a liveness answer in either accepted form."""
    return data == MSG_PONG_PLAIN or data == MSG_PONG_JSON or _frame_type(data) == "pong"


def is_ping(data: str) -> bool:
    """True for a client-initiated keep-alive ping."""
    return data == MSG_PING_PLAIN or data == MSG_PING_JSON or _frame_type(data) == "ping"


async def handle_heartbeat(ws: "WebSocket", data: str) -> bool:
    """
    Answer client-initiated pings with a JSON pong.

    Client pings keep proxies from idling the socket out; they do not
    touch the server-side liveness cycle.

    Returns:
        True if the frame was a ping and was handled, False otherwise.
    """
    if not is_ping(data):
        return False
    try:
        await ws.send_text(MSG_PONG_JSON)
    except (ConnectionError, RuntimeError, OSError):
        # Connection may have closed - the receive loop handles cleanup
        pass
    return True

"""Probe client liveness with an application-level ping/pong."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from relay.messaging.types import HeartbeatPingMessage
from relay.session.broadcast import send_quietly

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from relay.messaging.protocol import ConnectionProtocol

HEARTBEAT_INTERVAL = 30  # seconds between probes

logger = structlog.get_logger()


class HeartbeatMonitor:
    """Terminate connections that miss a heartbeat.

    Each tick, a connection whose ``is_alive`` flag is still False from the
    previous probe is closed and handed to ``on_timeout``; every other
    connection has its flag reset and receives a new ping. Any inbound
    traffic (``record_ack``) flips the flag back to True.
    """

    def __init__(
        self,
        get_connections: Callable[[], Iterable[ConnectionProtocol]],
        on_timeout: Callable[[ConnectionProtocol], Awaitable[None]],
        interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self._get_connections = get_connections
        self._on_timeout = on_timeout
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @staticmethod
    def record_ack(connection: ConnectionProtocol) -> None:
        connection.is_alive = True

    def start(self) -> None:
        """Start the probe loop. Idempotent."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._probe_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _probe_loop(self) -> None:  # pragma: no cover
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.probe_once()
            except Exception:
                logger.exception("heartbeat probe encountered an error")

    async def probe_once(self) -> None:
        ping = HeartbeatPingMessage().to_wire()
        for connection in list(self._get_connections()):
            if not connection.is_alive:
                logger.info("heartbeat timeout, terminating", connection_id=connection.connection_id)
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.close(code=1000, reason="heartbeat_timeout")
                await self._on_timeout(connection)
                continue
            connection.is_alive = False
            await send_quietly(connection, ping)

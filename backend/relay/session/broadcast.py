"""Send one message to a group of connections, skipping any that fail."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from relay.messaging.protocol import ConnectionProtocol


async def send_quietly(connection: ConnectionProtocol, message: dict[str, Any]) -> None:
    """Send to one connection; a closed or broken recipient is skipped, never retried."""
    with contextlib.suppress(ConnectionError, RuntimeError, OSError):
        await connection.send_message(message)


async def broadcast_to_players(
    connections: Mapping[int, ConnectionProtocol],
    message: dict[str, Any],
    exclude_player_id: int | None = None,
) -> None:
    """Broadcast to a room's connections, optionally excluding one player.

    Iterates over a snapshot so a disconnect that lands while we yield on a
    send cannot mutate the dict under us.
    """
    for player_id, connection in list(connections.items()):
        if player_id != exclude_player_id:
            await send_quietly(connection, message)


async def broadcast_to_connections(connections: Iterable[ConnectionProtocol], message: dict[str, Any]) -> None:
    for connection in list(connections):
        await send_quietly(connection, message)

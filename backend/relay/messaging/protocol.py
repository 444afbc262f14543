"""Abstract connection handle shared by the WebSocket transport and tests."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from relay.messaging.encoder import WireFormat, encode

if TYPE_CHECKING:
    from relay.session.models import SessionIdentity


class ConnectionProtocol(ABC):
    """
    One client session as seen by the session layer.

    Besides the transport operations, a connection owns the two pieces of
    session state the relay attaches to it: ``identity`` (room and player id,
    set once a join succeeds) and ``is_alive`` (heartbeat acknowledgement flag).
    """

    def __init__(self, wire_format: WireFormat = WireFormat.JSON) -> None:
        self.wire_format = wire_format
        self.identity: SessionIdentity | None = None
        self.is_alive = True
        self._send_lock = asyncio.Lock()

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """
        Send a text frame to the client.
        """
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        """
        Send a binary frame to the client.
        """
        ...

    @abstractmethod
    async def receive(self) -> str | bytes:
        """
        Receive the next frame from the client, text or binary.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        """
        Encode a message in this connection's wire format and send it.

        Frames leave in call order: a send issued while an earlier one is
        still in flight waits for it.
        """
        payload = encode(data, self.wire_format)
        async with self._send_lock:
            if isinstance(payload, bytes):
                await self.send_bytes(payload)
            else:
                await self.send_text(payload)

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from relay.messaging.encoder import MAX_PAYLOAD_BYTES, DecodeError, WireFormat, decode
from relay.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

if TYPE_CHECKING:
    from relay.messaging.router import MessageRouter


class WebSocketConnection(ConnectionProtocol):
    def __init__(
        self,
        websocket: WebSocket,
        connection_id: str | None = None,
        wire_format: WireFormat = WireFormat.JSON,
    ) -> None:
        super().__init__(wire_format)
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_text(self, data: str) -> None:
        try:
            await self._websocket.send_text(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive(self) -> str | bytes:
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise ConnectionError("WebSocket already disconnected")
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    *,
    wire_format: WireFormat = WireFormat.JSON,
    max_message_bytes: int = MAX_PAYLOAD_BYTES,
) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket, wire_format=wire_format)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    try:
        while True:
            raw = await connection.receive()
            try:
                data = decode(raw, max_bytes=max_message_bytes)
            except DecodeError as e:
                # Malformed frames are dropped without a reply.
                logger.debug("dropped undecodable frame", error=str(e))
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()

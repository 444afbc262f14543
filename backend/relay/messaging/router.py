from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from relay.messaging.types import (
    CreateRoomMessage,
    DeploymentUpdateMessage,
    ErrorMessage,
    GameEndMessage,
    GetRoomsMessage,
    JoinMessage,
    MoveMessage,
    PingMessage,
    PongMessage,
    SelectSlotMessage,
    SetupCompleteMessage,
    StartGameMessage,
    ToggleReadyMessage,
    UpdateNameMessage,
    parse_client_message,
    relay_extras,
)
from relay.session.broadcast import send_quietly
from relay.session.exceptions import RelayError

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol
    from relay.messaging.types import ClientMessage
    from relay.session.manager import SessionManager

logger = structlog.get_logger()


class MessageRouter:
    """
    Routes decoded client messages to the session manager.

    This is the single-message error boundary: a rejected request is answered
    privately to its sender, and nothing raised while handling one message
    reaches any other connection. Testable without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(self, connection: ConnectionProtocol, raw_message: dict[str, Any]) -> None:
        # Any decodable traffic proves the peer is alive.
        self._session_manager.record_activity(connection)

        try:
            message = parse_client_message(raw_message)
        except ValidationError as e:
            logger.warning(
                "dropped invalid message",
                connection_id=connection.connection_id,
                message_type=raw_message.get("type"),
                errors=e.error_count(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except RelayError as e:
            logger.info(
                "request rejected",
                connection_id=connection.connection_id,
                message_type=message.type,
                code=e.code,
            )
            await send_quietly(connection, ErrorMessage(code=e.code, message=e.message).to_wire())
        except Exception:
            logger.exception("unexpected error handling message", connection_id=connection.connection_id)

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:  # noqa: C901
        manager = self._session_manager
        if isinstance(message, GetRoomsMessage):
            await manager.get_rooms(connection)
        elif isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.room_type)
        elif isinstance(message, JoinMessage):
            await manager.join_room(connection, message.room_id)
        elif isinstance(message, SelectSlotMessage):
            await manager.select_slot(connection, message.slot_num, room_id=message.room_id)
        elif isinstance(message, ToggleReadyMessage):
            await manager.toggle_ready(connection, ready=message.is_ready, room_id=message.room_id)
        elif isinstance(message, UpdateNameMessage):
            await manager.update_name(connection, message.name, room_id=message.room_id)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection, room_id=message.room_id)
        elif isinstance(message, SetupCompleteMessage):
            await manager.setup_complete(connection, room_id=message.room_id)
        elif isinstance(message, DeploymentUpdateMessage):
            await manager.deployment_update(
                connection,
                message.pieces_placed,
                message.board,
                room_id=message.room_id,
            )
        elif isinstance(message, MoveMessage):
            await manager.relay_move(connection, relay_extras(message), room_id=message.room_id)
        elif isinstance(message, GameEndMessage):
            await manager.end_game(connection, relay_extras(message), room_id=message.room_id)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)
        elif isinstance(message, PongMessage):
            pass  # liveness already recorded above

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)

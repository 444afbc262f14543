from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import ConfigDict, Field, TypeAdapter, field_validator

from relay.session.types import RoomSummary, RoomType, WireModel

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

RoomIdField = Annotated[str, Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")]


class ClientMessageType(StrEnum):
    GET_ROOMS = "getRooms"
    CREATE_ROOM = "createRoom"
    JOIN = "join"
    SELECT_SLOT = "selectSlot"
    TOGGLE_READY = "toggleReady"
    START_GAME = "startGame"
    SETUP_COMPLETE = "setupComplete"
    DEPLOYMENT_UPDATE = "deploymentUpdate"
    MOVE = "move"
    GAME_END = "gameEnd"
    UPDATE_NAME = "updateName"
    PING = "ping"
    PONG = "pong"


class ServerMessageType(StrEnum):
    ROOM_LIST = "roomList"
    ROOM_CREATED = "roomCreated"
    ROOM_JOINED = "roomJoined"
    PLAYER_JOINED = "playerJoined"
    SLOT_SELECTED = "slotSelected"
    NAME_UPDATED = "nameUpdated"
    PLAYER_READY = "playerReady"
    GAME_START = "gameStart"
    OPPONENT_DEPLOYMENT_UPDATE = "opponentDeploymentUpdate"
    OPPONENT_SETUP_COMPLETE = "opponentSetupComplete"
    BOTH_PLAYERS_READY = "bothPlayersReady"
    MOVE = "move"
    GAME_END = "gameEnd"
    PLAYER_LEFT = "playerLeft"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


class ErrorCode(StrEnum):
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_FULL = "room_full"
    SEAT_TAKEN = "seat_taken"
    SEAT_REQUIRED = "seat_required"
    INVALID_SEAT = "invalid_seat"
    NOT_JOINED = "not_joined"
    ALREADY_IN_ROOM = "already_in_room"


# --- Client -> server ---
#
# roomId/playerId are accepted for compatibility with existing clients, but the
# server acts on the identity attached to the sending connection.


class GetRoomsMessage(WireModel):
    type: Literal[ClientMessageType.GET_ROOMS] = ClientMessageType.GET_ROOMS


class CreateRoomMessage(WireModel):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    room_type: RoomType = RoomType.TWO_PLAYER


class JoinMessage(WireModel):
    type: Literal[ClientMessageType.JOIN] = ClientMessageType.JOIN
    room_id: RoomIdField


class SelectSlotMessage(WireModel):
    type: Literal[ClientMessageType.SELECT_SLOT] = ClientMessageType.SELECT_SLOT
    room_id: RoomIdField | None = None
    player_id: int | None = None
    slot_num: int


class ToggleReadyMessage(WireModel):
    type: Literal[ClientMessageType.TOGGLE_READY] = ClientMessageType.TOGGLE_READY
    room_id: RoomIdField | None = None
    player_id: int | None = None
    is_ready: bool


class StartGameMessage(WireModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME
    room_id: RoomIdField | None = None


class SetupCompleteMessage(WireModel):
    type: Literal[ClientMessageType.SETUP_COMPLETE] = ClientMessageType.SETUP_COMPLETE
    room_id: RoomIdField | None = None
    player_id: int | None = None


class DeploymentUpdateMessage(WireModel):
    type: Literal[ClientMessageType.DEPLOYMENT_UPDATE] = ClientMessageType.DEPLOYMENT_UPDATE
    room_id: RoomIdField | None = None
    player_id: int | None = None
    pieces_placed: Any = None
    board: Any = None


class MoveMessage(WireModel):
    """A move; every field other than type/roomId/playerId is relayed verbatim."""

    model_config = ConfigDict(extra="allow")

    type: Literal[ClientMessageType.MOVE] = ClientMessageType.MOVE
    room_id: RoomIdField | None = None
    player_id: int | None = None


class GameEndMessage(WireModel):
    model_config = ConfigDict(extra="allow")

    type: Literal[ClientMessageType.GAME_END] = ClientMessageType.GAME_END
    room_id: RoomIdField | None = None
    player_id: int | None = None


class UpdateNameMessage(WireModel):
    type: Literal[ClientMessageType.UPDATE_NAME] = ClientMessageType.UPDATE_NAME
    room_id: RoomIdField | None = None
    player_id: int | None = None
    name: str = Field(min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("name must not contain control characters")
        return v


class PingMessage(WireModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


class PongMessage(WireModel):
    type: Literal[ClientMessageType.PONG] = ClientMessageType.PONG


ClientMessage = Annotated[
    GetRoomsMessage
    | CreateRoomMessage
    | JoinMessage
    | SelectSlotMessage
    | ToggleReadyMessage
    | StartGameMessage
    | SetupCompleteMessage
    | DeploymentUpdateMessage
    | MoveMessage
    | GameEndMessage
    | UpdateNameMessage
    | PingMessage
    | PongMessage,
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a decoded envelope into a typed client message.

    Raises ValidationError when "type" is missing or unknown, or a field is invalid.
    """
    return _client_message_adapter.validate_python(data)


def relay_extras(message: MoveMessage | GameEndMessage) -> dict[str, Any]:
    """Return the opaque, unmodelled fields of a relayed message."""
    return dict(message.model_extra or {})


# --- Server -> client ---


class RoomListMessage(WireModel):
    type: Literal[ServerMessageType.ROOM_LIST] = ServerMessageType.ROOM_LIST
    rooms: list[RoomSummary]


class _RosterFields(WireModel):
    host_id: int | None
    players: dict[int, int]  # player_id -> seat
    ready_states: dict[int, bool]
    player_names: dict[int, str]


class RoomCreatedMessage(_RosterFields):
    type: Literal[ServerMessageType.ROOM_CREATED] = ServerMessageType.ROOM_CREATED
    room_id: str
    room_type: RoomType
    player_id: int
    game_started: bool


class RoomJoinedMessage(_RosterFields):
    type: Literal[ServerMessageType.ROOM_JOINED] = ServerMessageType.ROOM_JOINED
    room_id: str
    room_type: RoomType
    player_id: int
    game_started: bool


class PlayerJoinedMessage(_RosterFields):
    type: Literal[ServerMessageType.PLAYER_JOINED] = ServerMessageType.PLAYER_JOINED
    player_id: int


class SlotSelectedMessage(_RosterFields):
    type: Literal[ServerMessageType.SLOT_SELECTED] = ServerMessageType.SLOT_SELECTED
    player_id: int
    slot_num: int


class PlayerLeftMessage(_RosterFields):
    type: Literal[ServerMessageType.PLAYER_LEFT] = ServerMessageType.PLAYER_LEFT
    player_id: int


class NameUpdatedMessage(WireModel):
    type: Literal[ServerMessageType.NAME_UPDATED] = ServerMessageType.NAME_UPDATED
    player_id: int
    name: str
    player_names: dict[int, str]


class PlayerReadyMessage(WireModel):
    type: Literal[ServerMessageType.PLAYER_READY] = ServerMessageType.PLAYER_READY
    player_id: int
    is_ready: bool
    all_ready: bool
    ready_states: dict[int, bool]


class GameStartMessage(WireModel):
    type: Literal[ServerMessageType.GAME_START] = ServerMessageType.GAME_START


class OpponentDeploymentUpdateMessage(WireModel):
    type: Literal[ServerMessageType.OPPONENT_DEPLOYMENT_UPDATE] = ServerMessageType.OPPONENT_DEPLOYMENT_UPDATE
    player_id: int
    pieces_placed: Any = None
    board: Any = None


class OpponentSetupCompleteMessage(WireModel):
    type: Literal[ServerMessageType.OPPONENT_SETUP_COMPLETE] = ServerMessageType.OPPONENT_SETUP_COMPLETE
    player_id: int


class BothPlayersReadyMessage(WireModel):
    type: Literal[ServerMessageType.BOTH_PLAYERS_READY] = ServerMessageType.BOTH_PLAYERS_READY


class ErrorMessage(WireModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: ErrorCode
    message: str


class HeartbeatPingMessage(WireModel):
    type: Literal[ServerMessageType.PING] = ServerMessageType.PING


class HeartbeatPongMessage(WireModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG

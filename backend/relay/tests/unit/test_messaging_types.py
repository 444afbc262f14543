import pytest
from pydantic import ValidationError

from relay.messaging.types import (
    CreateRoomMessage,
    ErrorCode,
    ErrorMessage,
    GameEndMessage,
    JoinMessage,
    MoveMessage,
    PlayerReadyMessage,
    RoomJoinedMessage,
    SelectSlotMessage,
    UpdateNameMessage,
    parse_client_message,
    relay_extras,
)
from relay.session.types import RoomType


class TestParseClientMessage:
    def test_camel_case_fields(self):
        message = parse_client_message({"type": "selectSlot", "roomId": "ABC123", "playerId": 1, "slotNum": 2})

        assert isinstance(message, SelectSlotMessage)
        assert message.room_id == "ABC123"
        assert message.slot_num == 2

    def test_room_type_parsed(self):
        message = parse_client_message({"type": "createRoom", "roomType": "3player"})

        assert isinstance(message, CreateRoomMessage)
        assert message.room_type is RoomType.THREE_PLAYER

    def test_unknown_room_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "createRoom", "roomType": "4player"})

    def test_join_requires_room_id(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join"})

    @pytest.mark.parametrize("room_id", ["", "has space", "a" * 51])
    def test_malformed_room_id_rejected(self, room_id):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join", "roomId": room_id})

    def test_join_accepts_generated_id(self):
        assert isinstance(parse_client_message({"type": "join", "roomId": "K3Z9Q1"}), JoinMessage)

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"roomId": "ABC123"})

    @pytest.mark.parametrize("name", ["", "x" * 51, "bad\nname", "bell\x07"])
    def test_invalid_names_rejected(self, name):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "updateName", "name": name})

    def test_valid_name(self):
        message = parse_client_message({"type": "updateName", "name": "Heneral Luna"})
        assert isinstance(message, UpdateNameMessage)


class TestRelayExtras:
    def test_move_keeps_unmodelled_fields(self):
        message = parse_client_message(
            {"type": "move", "roomId": "ABC123", "playerId": 2, "from": [0, 0], "to": [0, 1]},
        )

        assert isinstance(message, MoveMessage)
        assert relay_extras(message) == {"from": [0, 0], "to": [0, 1]}

    def test_game_end_without_extras(self):
        message = parse_client_message({"type": "gameEnd"})

        assert isinstance(message, GameEndMessage)
        assert relay_extras(message) == {}


class TestServerMessages:
    def test_roster_keys_serialized_as_strings(self):
        wire = RoomJoinedMessage(
            room_id="ABC123",
            room_type=RoomType.TWO_PLAYER,
            player_id=2,
            game_started=False,
            host_id=1,
            players={1: 1, 2: 2},
            ready_states={1: True, 2: False},
            player_names={},
        ).to_wire()

        assert wire == {
            "type": "roomJoined",
            "roomId": "ABC123",
            "roomType": "2player",
            "playerId": 2,
            "gameStarted": False,
            "hostId": 1,
            "players": {"1": 1, "2": 2},
            "readyStates": {"1": True, "2": False},
            "playerNames": {},
        }

    def test_player_ready_wire_names(self):
        wire = PlayerReadyMessage(player_id=1, is_ready=True, all_ready=False, ready_states={1: True}).to_wire()

        assert wire["isReady"] is True
        assert wire["allReady"] is False

    def test_error_message(self):
        wire = ErrorMessage(code=ErrorCode.ROOM_FULL, message="Room is full").to_wire()

        assert wire == {"type": "error", "code": "room_full", "message": "Room is full"}

"""Errors raised by room and session operations.

Each carries the ErrorCode reported to the sender; the message router turns
them into private error messages at the single-message boundary.
"""

from relay.messaging.types import ErrorCode


class RelayError(Exception):
    code: ErrorCode = ErrorCode.NOT_JOINED
    default_message = "Request rejected"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class RoomNotFoundError(RelayError):
    code = ErrorCode.ROOM_NOT_FOUND
    default_message = "Room not found"


class RoomFullError(RelayError):
    code = ErrorCode.ROOM_FULL
    default_message = "Room is full"


class SeatTakenError(RelayError):
    code = ErrorCode.SEAT_TAKEN
    default_message = "Slot already taken"


class SeatRequiredError(RelayError):
    code = ErrorCode.SEAT_REQUIRED
    default_message = "You must select a slot first"


class InvalidSeatError(RelayError):
    code = ErrorCode.INVALID_SEAT
    default_message = "No such slot in this room"


class NotJoinedError(RelayError):
    code = ErrorCode.NOT_JOINED
    default_message = "You must join a room first"


class AlreadyInRoomError(RelayError):
    code = ErrorCode.ALREADY_IN_ROOM
    default_message = "You must leave your current room first"

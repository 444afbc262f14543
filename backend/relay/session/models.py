from dataclasses import dataclass


@dataclass(frozen=True)
class SessionIdentity:
    """Room membership attached to a connection once a join succeeds.

    Lifecycle:
    - Set by SessionManager on create_room/join_room
    - Cleared on disconnect, or when the room is deleted under the connection
    """

    room_id: str
    player_id: int

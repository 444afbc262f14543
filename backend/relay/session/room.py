"""Room aggregate: seating, readiness, setup and membership for one match."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relay.session.exceptions import InvalidSeatError, RoomFullError, SeatRequiredError, SeatTakenError
from relay.session.types import RoomSummary, RoomType

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol

# Seats that gate readiness and setup. A 3player room's third seat is a
# non-combat seat and never participates in either gate.
COMBAT_SEATS = (1, 2)


@dataclass
class Room:
    """State for one match, keyed everywhere by player id.

    ``connections`` is the authoritative set of who is attached right now;
    ``seats`` only covers players who picked a seat. Seat numbers in
    ``seats`` are pairwise distinct. All methods are synchronous so that a
    mutation is never split by an await.
    """

    room_id: str
    room_type: RoomType = RoomType.TWO_PLAYER
    host_id: int | None = None
    game_started: bool = False
    both_setup_announced: bool = False
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    seats: dict[int, int] = field(default_factory=dict)  # player_id -> seat
    ready_states: dict[int, bool] = field(default_factory=dict)
    setup_complete: dict[int, bool] = field(default_factory=dict)
    player_names: dict[int, str] = field(default_factory=dict)
    connections: dict[int, ConnectionProtocol] = field(default_factory=dict)
    join_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def capacity(self) -> int:
        return self.room_type.capacity

    @property
    def player_count(self) -> int:
        return len(self.connections)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.capacity

    @property
    def all_ready(self) -> bool:
        """Both combat seats are taken and both of their occupants are ready."""
        holders = [self.seat_holder(seat) for seat in COMBAT_SEATS]
        return all(pid is not None and self.ready_states.get(pid, False) for pid in holders)

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def seat_holder(self, seat: int) -> int | None:
        for pid, taken in self.seats.items():
            if taken == seat:
                return pid
        return None

    def next_player_id(self) -> int:
        """Smallest positive id not held by a current connection."""
        player_id = 1
        while player_id in self.connections:
            player_id += 1
        return player_id

    def admit(self, connection: ConnectionProtocol) -> int:
        """Attach a connection under a fresh player id. The first occupant becomes host."""
        if self.is_full:
            raise RoomFullError
        player_id = self.next_player_id()
        self.connections[player_id] = connection
        if self.host_id not in self.connections:
            self.host_id = player_id
        return player_id

    def remove_player(self, player_id: int) -> bool:
        """Drop every trace of a player. Returns True if the host moved."""
        self.connections.pop(player_id, None)
        self.seats.pop(player_id, None)
        self.ready_states.pop(player_id, None)
        self.setup_complete.pop(player_id, None)
        self.player_names.pop(player_id, None)

        if self.host_id != player_id:
            return False
        self.host_id = min(self.connections) if self.connections else None
        return self.host_id is not None

    def select_seat(self, player_id: int, seat: int) -> bool:
        """Take or release a seat.

        Selecting the seat the player already holds releases it and clears
        their readiness. Returns True when a seat was taken, False when released.
        """
        if not 1 <= seat <= self.capacity:
            raise InvalidSeatError(f"Slot must be between 1 and {self.capacity}")

        if self.seats.get(player_id) == seat:
            del self.seats[player_id]
            self.ready_states.pop(player_id, None)
            return False

        if self.seat_holder(seat) is not None:
            raise SeatTakenError

        self.seats[player_id] = seat
        self.ready_states[player_id] = False
        return True

    def set_ready(self, player_id: int, *, ready: bool) -> None:
        if player_id not in self.seats:
            raise SeatRequiredError
        self.ready_states[player_id] = ready

    def mark_setup_complete(self, player_id: int) -> bool:
        """Record a finished deployment.

        Returns True only on the call that first sees both combat seats set up,
        so the room-wide announcement goes out once.
        """
        self.setup_complete[player_id] = True
        if self.both_setup_announced:
            return False
        holders = [self.seat_holder(seat) for seat in COMBAT_SEATS]
        if all(pid is not None and self.setup_complete.get(pid, False) for pid in holders):
            self.both_setup_announced = True
            return True
        return False

    def set_name(self, player_id: int, name: str) -> None:
        self.player_names[player_id] = name

    def roster(self) -> dict[str, Any]:
        """Copy of the fields stamped on roster-bearing messages."""
        return {
            "host_id": self.host_id,
            "players": dict(self.seats),
            "ready_states": dict(self.ready_states),
            "player_names": dict(self.player_names),
        }

    def summary(self) -> RoomSummary:
        return RoomSummary(
            id=self.room_id,
            players=self.player_count,
            capacity=self.capacity,
            is_full=self.is_full,
            room_type=self.room_type,
            game_started=self.game_started,
        )

"""Room registry: the owned store of live rooms, plus the idle-room sweeper."""

from __future__ import annotations

import asyncio
import contextlib
import secrets
import string
import time
from typing import TYPE_CHECKING

import structlog

from relay.session.room import Room
from relay.session.types import RoomType

if TYPE_CHECKING:
    from collections.abc import Callable

    from relay.session.types import RoomSummary

logger = structlog.get_logger()

ROOM_ID_LENGTH = 6
_ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_id() -> str:
    return "".join(secrets.choice(_ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


class RoomRegistry:
    """Map room ids to rooms.

    Purely state management, no I/O. Instances are independent of each
    other; the server holds one, tests build as many as they like.
    """

    def __init__(
        self,
        *,
        id_factory: Callable[[], str] = generate_room_id,
        room_idle_ttl_seconds: float = 1800,
        sweep_interval_seconds: float = 300,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        self._id_factory = id_factory
        self._room_idle_ttl_seconds = room_idle_ttl_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._sweeper_task: asyncio.Task[None] | None = None

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def create(self, room_type: RoomType = RoomType.TWO_PLAYER) -> Room:
        """Create an empty room under a fresh id."""
        room_id = self._id_factory()
        while room_id in self._rooms:
            room_id = self._id_factory()
        room = Room(room_id=room_id, room_type=room_type)
        self._rooms[room_id] = room
        logger.info("room created", room_id=room_id, room_type=room_type)
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> Room | None:
        """Remove a room. Deleting an unknown id is a no-op that returns None."""
        return self._rooms.pop(room_id, None)

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def list_summaries(self) -> list[RoomSummary]:
        """Snapshot of every room, in creation order."""
        return [room.summary() for room in self._rooms.values()]

    # --- Idle sweep ---

    def sweep_idle_rooms(self, now: float | None = None) -> list[str]:
        """Delete rooms that are both empty and idle past the TTL. Returns their ids.

        Rooms with any connection are never swept, whatever their age.
        """
        now = time.monotonic() if now is None else now
        idle = [
            room
            for room in self.rooms()
            if room.is_empty and now - room.last_activity > self._room_idle_ttl_seconds
        ]
        for room in idle:
            self._rooms.pop(room.room_id, None)
            logger.info(
                "idle room swept",
                room_id=room.room_id,
                age_seconds=int(now - room.created_at),
                idle_seconds=int(now - room.last_activity),
            )
        return [room.room_id for room in idle]

    def start_sweeper(self) -> None:
        """Start the periodic idle sweep. Idempotent; disabled when the TTL is 0."""
        if self._room_idle_ttl_seconds <= 0:
            return
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweeper_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None

    async def _sweeper_loop(self) -> None:  # pragma: no cover
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                self.sweep_idle_rooms()
            except Exception:
                logger.exception("idle sweep encountered an error")

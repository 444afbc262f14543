from __future__ import annotations

from typing import TYPE_CHECKING

from relay.session.types import RoomType

if TYPE_CHECKING:
    from relay.session.manager import SessionManager
    from relay.tests.mocks import MockConnection


async def create_room_with_players(
    manager: SessionManager,
    connections: list[MockConnection],
    room_type: RoomType = RoomType.TWO_PLAYER,
) -> str:
    """Have the first connection create a room and the rest join it. Returns the room id.

    Outboxes are cleared afterwards so tests only see what they trigger.
    """
    host, *others = connections
    await manager.create_room(host, room_type)
    room_id = host.identity.room_id
    for conn in others:
        await manager.join_room(conn, room_id)
    for conn in connections:
        conn.clear()
    return room_id


async def seat_and_ready(manager: SessionManager, first: MockConnection, second: MockConnection) -> None:
    """Seat two players in the combat seats and mark both ready."""
    await manager.select_slot(first, 1)
    await manager.select_slot(second, 2)
    await manager.toggle_ready(first, ready=True)
    await manager.toggle_ready(second, ready=True)
    first.clear()
    second.clear()

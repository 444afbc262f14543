"""Session manager: applies one client message at a time to the room registry.

Every operation validates the sender against the registry, mutates room state
synchronously, then sends the resulting messages. Because no await happens
between validation and mutation, each message's state change is atomic with
respect to every other connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any

import structlog

from relay.messaging.types import (
    BothPlayersReadyMessage,
    GameStartMessage,
    HeartbeatPongMessage,
    NameUpdatedMessage,
    OpponentDeploymentUpdateMessage,
    OpponentSetupCompleteMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    PlayerReadyMessage,
    RoomCreatedMessage,
    RoomJoinedMessage,
    RoomListMessage,
    ServerMessageType,
    SlotSelectedMessage,
)
from relay.session.broadcast import broadcast_to_connections, broadcast_to_players, send_quietly
from relay.session.exceptions import AlreadyInRoomError, NotJoinedError, RoomNotFoundError
from relay.session.heartbeat import HEARTBEAT_INTERVAL, HeartbeatMonitor
from relay.session.models import SessionIdentity
from relay.session.registry import RoomRegistry
from relay.session.types import RoomType

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol
    from relay.session.room import Room

logger = structlog.get_logger()

GAME_END_GRACE_SECONDS = 5.0
STATS_INTERVAL_SECONDS = 300
SHUTDOWN_CLOSE_CODE = 1001
SHUTDOWN_CLOSE_REASON = "server_shutting_down"


class SessionManager:
    def __init__(
        self,
        registry: RoomRegistry | None = None,
        *,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        game_end_grace_seconds: float = GAME_END_GRACE_SECONDS,
        stats_interval_seconds: float = STATS_INTERVAL_SECONDS,
    ) -> None:
        self._registry = registry or RoomRegistry()
        self._connections: dict[str, ConnectionProtocol] = {}
        self._heartbeat = HeartbeatMonitor(
            get_connections=lambda: self._connections.values(),
            on_timeout=self.disconnect,
            interval=heartbeat_interval,
        )
        self._game_end_grace_seconds = game_end_grace_seconds
        self._stats_interval_seconds = stats_interval_seconds
        self._pending_deletions: dict[str, asyncio.Task[None]] = {}  # room_id -> delayed delete
        self._stats_task: asyncio.Task[None] | None = None
        self._started_at = time.monotonic()

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register_connection(self, connection: ConnectionProtocol) -> None:
        connection.is_alive = True
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def get_room(self, room_id: str) -> Room | None:
        return self._registry.get(room_id)

    def stats(self) -> dict[str, int]:
        return {
            "rooms": self._registry.room_count,
            "connections": self.connection_count,
            "uptime_seconds": int(time.monotonic() - self._started_at),
        }

    # --- Lobby ---

    async def get_rooms(self, connection: ConnectionProtocol) -> None:
        await send_quietly(connection, RoomListMessage(rooms=self._registry.list_summaries()).to_wire())

    async def create_room(self, connection: ConnectionProtocol, room_type: RoomType = RoomType.TWO_PLAYER) -> None:
        """Create a room and admit its creator as player 1 and host."""
        if self._current_room(connection) is not None:
            raise AlreadyInRoomError

        room = self._registry.create(room_type)
        player_id = room.admit(connection)
        connection.identity = SessionIdentity(room_id=room.room_id, player_id=player_id)
        connection.is_alive = True
        logger.info("room host joined", room_id=room.room_id, player_id=player_id)

        await send_quietly(
            connection,
            RoomCreatedMessage(
                room_id=room.room_id,
                room_type=room.room_type,
                player_id=player_id,
                game_started=room.game_started,
                **room.roster(),
            ).to_wire(),
        )
        await self._broadcast_room_list()

    async def join_room(self, connection: ConnectionProtocol, room_id: str) -> None:
        room = self._registry.get(room_id)
        if room is None:
            raise RoomNotFoundError

        # Serialize join -> ack -> broadcast per room so a concurrent joiner's
        # broadcast cannot reach this connection before its own roomJoined.
        # Other broadcasts (slot, ready) can only target the joiner once it is
        # admitted, and roomJoined is queued on its send lock first.
        async with room.join_lock:
            current = self._current_room(connection)
            if current is room:
                await self._confirm_rejoin(connection, room)
                return
            if current is not None:
                raise AlreadyInRoomError
            if self._registry.get(room_id) is not room:
                raise RoomNotFoundError

            player_id = room.admit(connection)
            connection.identity = SessionIdentity(room_id=room_id, player_id=player_id)
            connection.is_alive = True
            room.touch()
            logger.info("player joined room", room_id=room_id, player_id=player_id, player_count=room.player_count)

            await send_quietly(connection, self._room_joined(room, player_id))
            await broadcast_to_players(
                room.connections,
                PlayerJoinedMessage(player_id=player_id, **room.roster()).to_wire(),
                exclude_player_id=player_id,
            )

        await self._broadcast_room_list()

    async def _confirm_rejoin(self, connection: ConnectionProtocol, room: Room) -> None:
        """Resend the snapshot to a connection already seated in this room. No id change, no broadcast."""
        player_id = connection.identity.player_id
        room.touch()
        logger.info("player rejoined room", room_id=room.room_id, player_id=player_id)
        await send_quietly(connection, self._room_joined(room, player_id))

    @staticmethod
    def _room_joined(room: Room, player_id: int) -> dict[str, Any]:
        return RoomJoinedMessage(
            room_id=room.room_id,
            room_type=room.room_type,
            player_id=player_id,
            game_started=room.game_started,
            **room.roster(),
        ).to_wire()

    # --- Seating and readiness ---

    async def select_slot(self, connection: ConnectionProtocol, slot_num: int, room_id: str | None = None) -> None:
        room, player_id = self._require_member(connection, room_id)
        taken = room.select_seat(player_id, slot_num)
        logger.info(
            "seat taken" if taken else "seat released",
            room_id=room.room_id,
            player_id=player_id,
            seat=slot_num,
        )
        await broadcast_to_players(
            room.connections,
            SlotSelectedMessage(player_id=player_id, slot_num=slot_num, **room.roster()).to_wire(),
        )
        await self._broadcast_room_list()

    async def update_name(self, connection: ConnectionProtocol, name: str, room_id: str | None = None) -> None:
        room, player_id = self._require_member(connection, room_id)
        room.set_name(player_id, name)
        await broadcast_to_players(
            room.connections,
            NameUpdatedMessage(player_id=player_id, name=name, player_names=dict(room.player_names)).to_wire(),
        )

    async def toggle_ready(self, connection: ConnectionProtocol, *, ready: bool, room_id: str | None = None) -> None:
        """Set readiness and tell the whole room, sender included."""
        room, player_id = self._require_member(connection, room_id)
        room.set_ready(player_id, ready=ready)
        all_ready = room.all_ready
        logger.info("player ready changed", room_id=room.room_id, player_id=player_id, ready=ready, all_ready=all_ready)
        await broadcast_to_players(
            room.connections,
            PlayerReadyMessage(
                player_id=player_id,
                is_ready=ready,
                all_ready=all_ready,
                ready_states=dict(room.ready_states),
            ).to_wire(),
        )

    # --- Match flow ---

    async def start_game(self, connection: ConnectionProtocol, room_id: str | None = None) -> None:
        room, _player_id = self._require_member(connection, room_id)
        room.game_started = True
        logger.info("game started", room_id=room.room_id)
        await broadcast_to_players(room.connections, GameStartMessage().to_wire())
        await self._broadcast_room_list()

    async def deployment_update(
        self,
        connection: ConnectionProtocol,
        pieces_placed: Any,  # noqa: ANN401
        board: Any,  # noqa: ANN401
        room_id: str | None = None,
    ) -> None:
        room, player_id = self._require_member(connection, room_id)
        await broadcast_to_players(
            room.connections,
            OpponentDeploymentUpdateMessage(player_id=player_id, pieces_placed=pieces_placed, board=board).to_wire(),
            exclude_player_id=player_id,
        )

    async def setup_complete(self, connection: ConnectionProtocol, room_id: str | None = None) -> None:
        room, player_id = self._require_member(connection, room_id)
        both_done = room.mark_setup_complete(player_id)
        await broadcast_to_players(
            room.connections,
            OpponentSetupCompleteMessage(player_id=player_id).to_wire(),
            exclude_player_id=player_id,
        )
        if both_done:
            logger.info("both players set up", room_id=room.room_id)
            await broadcast_to_players(room.connections, BothPlayersReadyMessage().to_wire())

    async def relay_move(
        self,
        connection: ConnectionProtocol,
        payload: dict[str, Any],
        room_id: str | None = None,
    ) -> None:
        """Forward a move to everyone but the mover, who already holds the resulting state."""
        room, player_id = self._require_member(connection, room_id)
        await broadcast_to_players(
            room.connections,
            self._stamped(ServerMessageType.MOVE, payload, room, player_id),
            exclude_player_id=player_id,
        )

    async def end_game(
        self,
        connection: ConnectionProtocol,
        payload: dict[str, Any],
        room_id: str | None = None,
    ) -> None:
        """Announce the result to the whole room and delete the room after a grace delay."""
        room, player_id = self._require_member(connection, room_id)
        logger.info("game ended", room_id=room.room_id, player_id=player_id)
        await broadcast_to_players(room.connections, self._stamped(ServerMessageType.GAME_END, payload, room, player_id))
        self._schedule_deletion(room)

    @staticmethod
    def _stamped(
        message_type: ServerMessageType,
        payload: dict[str, Any],
        room: Room,
        player_id: int,
    ) -> dict[str, Any]:
        return {**payload, "type": message_type.value, "roomId": room.room_id, "playerId": player_id}

    def _schedule_deletion(self, room: Room) -> None:
        existing = self._pending_deletions.get(room.room_id)
        if existing is not None and not existing.done():
            return
        self._pending_deletions[room.room_id] = asyncio.create_task(self._delete_after_grace(room))

    async def _delete_after_grace(self, room: Room) -> None:
        await asyncio.sleep(self._game_end_grace_seconds)
        self._pending_deletions.pop(room.room_id, None)
        await self._close_room(room)

    async def _close_room(self, room: Room) -> None:
        """Delete a room and detach any connections still attached to it."""
        if self._registry.get(room.room_id) is not room:
            return
        self._registry.delete(room.room_id)
        for player_id, connection in list(room.connections.items()):
            if connection.identity == SessionIdentity(room_id=room.room_id, player_id=player_id):
                connection.identity = None
        logger.info("room closed", room_id=room.room_id)
        await self._broadcast_room_list()

    # --- Liveness ---

    def record_activity(self, connection: ConnectionProtocol) -> None:
        self._heartbeat.record_ack(connection)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await send_quietly(connection, HeartbeatPongMessage().to_wire())

    # --- Disconnect ---

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Remove a lost connection from its room and from the registry of connections.

        Safe to call more than once; a connection that never joined only gets unregistered.
        """
        self.unregister_connection(connection)
        identity = connection.identity
        connection.identity = None
        if identity is None:
            return

        room = self._registry.get(identity.room_id)
        if room is None or room.connections.get(identity.player_id) is not connection:
            return

        player_id = identity.player_id
        log = logger.bind(room_id=room.room_id, player_id=player_id)
        if room.remove_player(player_id):
            log.info("host transferred", host_id=room.host_id)
        room.touch()
        log.info("player left room", player_count=room.player_count)

        if room.is_empty:
            self._registry.delete(room.room_id)
            pending = self._pending_deletions.pop(room.room_id, None)
            if pending is not None:
                pending.cancel()
            log.info("room closed (empty)")
        else:
            await broadcast_to_players(
                room.connections,
                PlayerLeftMessage(player_id=player_id, **room.roster()).to_wire(),
            )

        await self._broadcast_room_list()

    # --- Helpers ---

    def _current_room(self, connection: ConnectionProtocol) -> Room | None:
        """Room the connection is live in, clearing an identity that has gone stale."""
        identity = connection.identity
        if identity is None:
            return None
        room = self._registry.get(identity.room_id)
        if room is None or room.connections.get(identity.player_id) is not connection:
            connection.identity = None
            return None
        return room

    def _require_member(self, connection: ConnectionProtocol, room_id: str | None) -> tuple[Room, int]:
        """Resolve the sender's room and player id, refreshing the room's activity time."""
        identity = connection.identity
        if identity is None:
            raise NotJoinedError
        if room_id is not None and room_id != identity.room_id:
            raise NotJoinedError(f"You are not in room {room_id}")
        room = self._current_room(connection)
        if room is None:
            raise RoomNotFoundError
        room.touch()
        return room, identity.player_id

    async def _broadcast_room_list(self) -> None:
        """Push the room list to connections browsing the lobby (not in any room)."""
        lobby = [c for c in self._connections.values() if c.identity is None]
        if not lobby:
            return
        await broadcast_to_connections(lobby, RoomListMessage(rooms=self._registry.list_summaries()).to_wire())

    # --- Background tasks ---

    def start(self) -> None:
        """Start heartbeat probing, the idle sweep and periodic stats logging."""
        self._heartbeat.start()
        self._registry.start_sweeper()
        if self._stats_task is None or self._stats_task.done():
            self._stats_task = asyncio.create_task(self._stats_loop())

    async def _stats_loop(self) -> None:  # pragma: no cover
        while True:
            await asyncio.sleep(self._stats_interval_seconds)
            self.log_stats()

    def log_stats(self) -> None:
        stats = self.stats()
        logger.info(
            "server stats",
            rooms=stats["rooms"],
            connections=stats["connections"],
            uptime_minutes=stats["uptime_seconds"] // 60,
        )

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Stop background tasks and close every connection with a going-away code."""
        await self._heartbeat.stop()
        await self._registry.stop_sweeper()
        if self._stats_task is not None:
            self._stats_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stats_task
            self._stats_task = None
        for task in self._pending_deletions.values():
            task.cancel()
        self._pending_deletions.clear()

        connections = list(self._connections.values())
        logger.info("closing connections for shutdown", connections=len(connections))
        try:
            await asyncio.wait_for(
                asyncio.gather(*(self._close_for_shutdown(c) for c in connections)),
                timeout=grace_seconds,
            )
        except TimeoutError:
            logger.warning("shutdown grace period elapsed with connections still closing")

    @staticmethod
    async def _close_for_shutdown(connection: ConnectionProtocol) -> None:
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.close(code=SHUTDOWN_CLOSE_CODE, reason=SHUTDOWN_CLOSE_REASON)

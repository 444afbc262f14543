import asyncio

from relay.session.manager import SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON, SessionManager
from relay.session.registry import RoomRegistry
from relay.tests.helpers import create_room_with_players
from relay.tests.mocks import MockConnection


class _HangingConnection(MockConnection):
    async def close(self, code: int = 1000, reason: str = "") -> None:
        await asyncio.sleep(10)


class TestSessionLifecycle:
    async def test_stats_count_rooms_and_connections(self, manager, make_connection):
        host, _browser = make_connection(), make_connection()
        await create_room_with_players(manager, [host])

        stats = manager.stats()

        assert stats["rooms"] == 1
        assert stats["connections"] == 2
        assert stats["uptime_seconds"] >= 0

    async def test_log_stats(self, manager):
        manager.log_stats()

    async def test_start_and_shutdown_manage_background_tasks(self):
        manager = SessionManager(RoomRegistry(), heartbeat_interval=60)

        manager.start()
        assert manager.heartbeat._task is not None
        assert manager.registry._sweeper_task is not None
        assert manager._stats_task is not None

        await manager.shutdown()

        assert manager.heartbeat._task is None
        assert manager.registry._sweeper_task is None
        assert manager._stats_task is None

    async def test_shutdown_closes_connections_with_going_away(self, manager, make_connection):
        host, browser = make_connection(), make_connection()
        await create_room_with_players(manager, [host])

        await manager.shutdown()

        for conn in (host, browser):
            assert conn.is_closed
            assert conn.close_code == SHUTDOWN_CLOSE_CODE
            assert conn.close_reason == SHUTDOWN_CLOSE_REASON

    async def test_shutdown_cancels_pending_deletions(self, manager, make_connection):
        host, guest = make_connection(), make_connection()
        await create_room_with_players(manager, [host, guest])
        await manager.end_game(host, {})

        await manager.shutdown()

        assert manager._pending_deletions == {}

    async def test_shutdown_bounded_by_grace_period(self, manager):
        manager.register_connection(_HangingConnection())

        await asyncio.wait_for(manager.shutdown(grace_seconds=0.05), timeout=1)

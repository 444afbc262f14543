import asyncio

from relay.session.heartbeat import HeartbeatMonitor
from relay.tests.helpers import create_room_with_players
from relay.tests.mocks import MockConnection


class TestHeartbeatMonitor:
    async def test_probe_pings_live_connections(self):
        conn = MockConnection()
        monitor = HeartbeatMonitor(lambda: [conn], on_timeout=_never)

        await monitor.probe_once()

        assert conn.sent_messages == [{"type": "ping"}]
        assert conn.is_alive is False
        assert not conn.is_closed

    async def test_unanswered_probe_terminates(self):
        conn = MockConnection()
        timed_out = []

        async def on_timeout(connection):
            timed_out.append(connection)

        monitor = HeartbeatMonitor(lambda: [conn], on_timeout=on_timeout)

        await monitor.probe_once()
        await monitor.probe_once()

        assert timed_out == [conn]
        assert conn.is_closed
        assert conn.close_code == 1000
        assert conn.close_reason == "heartbeat_timeout"

    async def test_ack_between_probes_keeps_connection(self):
        conn = MockConnection()
        monitor = HeartbeatMonitor(lambda: [conn], on_timeout=_never)

        await monitor.probe_once()
        HeartbeatMonitor.record_ack(conn)
        await monitor.probe_once()

        assert not conn.is_closed
        assert len(conn.messages_of_type("ping")) == 2

    async def test_probe_loop_runs_on_interval(self):
        conn = MockConnection()
        monitor = HeartbeatMonitor(lambda: [conn], on_timeout=_never, interval=0.01)

        monitor.start()
        monitor.start()
        try:
            for _ in range(100):
                if conn.sent_messages:
                    break
                await asyncio.sleep(0.01)
        finally:
            await monitor.stop()

        assert conn.messages_of_type("ping")


class TestHeartbeatWithSessionManager:
    async def test_any_message_counts_as_liveness(self, manager, router, make_connection):
        conn = make_connection()

        await manager.heartbeat.probe_once()
        await router.handle_message(conn, {"type": "getRooms"})
        await manager.heartbeat.probe_once()

        assert not conn.is_closed

    async def test_timeout_runs_full_disconnect(self, manager, make_connection):
        host, guest = make_connection(), make_connection()
        room_id = await create_room_with_players(manager, [host, guest])
        host.is_alive = False

        await manager.heartbeat.probe_once()

        assert host.is_closed
        assert manager.get_room(room_id).host_id == 2
        assert guest.messages_of_type("playerLeft")[0]["playerId"] == 1
        assert manager.connection_count == 1

    async def test_client_ping_answered_with_pong(self, router, make_connection):
        conn = make_connection()

        await router.handle_message(conn, {"type": "ping"})

        assert conn.sent_messages == [{"type": "pong"}]


async def _never(_connection):
    raise AssertionError("connection should not time out")

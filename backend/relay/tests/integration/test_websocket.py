"""Integration tests for the relay's WebSocket and HTTP endpoints.

These drive the real Starlette app through the test client, covering the
transport layer (frame decoding, wire formats, disconnect handling) on top of
the session logic exercised by the unit tests.
"""

import msgpack
import pytest
from starlette.testclient import TestClient

from relay.messaging.encoder import WireFormat
from relay.server.app import create_app
from relay.server.settings import RelayServerSettings


def _settings(**overrides) -> RelayServerSettings:
    return RelayServerSettings(
        server_name="Test Relay",
        heartbeat_interval_seconds=60,
        game_end_grace_seconds=0.05,
        **overrides,
    )


@pytest.fixture
def client():
    with TestClient(create_app(settings=_settings())) as client:
        yield client


class TestHttpEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert "version" in body
        assert "commit" in body

    def test_status_reports_counts(self, client):
        body = client.get("/status").json()

        assert body["rooms"] == 0
        assert body["connections"] == 0

    def test_discover_lists_occupied_rooms(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "createRoom"})
            created = ws.receive_json()

            body = client.get("/discover").json()

        assert body["type"] == "serverFound"
        assert body["serverName"] == "Test Relay"
        assert body["host"] == "testserver"
        assert body["wsPort"] == 8080
        assert isinstance(body["timestamp"], int)
        assert [room["id"] for room in body["rooms"]] == [created["roomId"]]


class TestWebSocketRelay:
    def test_create_join_and_play(self, client):
        with client.websocket_connect("/ws") as host:
            host.send_json({"type": "createRoom", "roomType": "2player"})
            created = host.receive_json()
            assert created["type"] == "roomCreated"
            room_id = created["roomId"]

            with client.websocket_connect("/") as guest:
                guest.send_json({"type": "getRooms"})
                room_list = guest.receive_json()
                assert [room["id"] for room in room_list["rooms"]] == [room_id]

                guest.send_json({"type": "join", "roomId": room_id})
                joined = guest.receive_json()
                assert joined["type"] == "roomJoined"
                assert joined["playerId"] == 2
                assert joined["hostId"] == 1

                player_joined = host.receive_json()
                assert player_joined["type"] == "playerJoined"
                assert player_joined["playerId"] == 2

                host.send_json({"type": "move", "roomId": room_id, "playerId": 1, "from": [5, 0], "to": [4, 0]})
                move = guest.receive_json()
                assert move == {"type": "move", "roomId": room_id, "playerId": 1, "from": [5, 0], "to": [4, 0]}

            left = host.receive_json()
            assert left["type"] == "playerLeft"
            assert left["playerId"] == 2
            assert left["hostId"] == 1

    def test_join_unknown_room_returns_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join", "roomId": "NOPE42"})

            assert ws.receive_json() == {"type": "error", "code": "room_not_found", "message": "Room not found"}

    def test_malformed_frames_are_dropped(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("definitely not json")
            ws.send_json(["not", "an", "object"])
            ws.send_json({"type": "noSuchMessage"})
            ws.send_json({"type": "ping"})

            assert ws.receive_json() == {"type": "pong"}

    def test_game_end_returns_players_to_lobby(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            guest.send_json({"type": "getRooms"})
            assert guest.receive_json() == {"type": "roomList", "rooms": []}

            host.send_json({"type": "createRoom"})
            room_id = host.receive_json()["roomId"]
            assert guest.receive_json()["type"] == "roomList"

            guest.send_json({"type": "join", "roomId": room_id})
            assert guest.receive_json()["type"] == "roomJoined"
            assert host.receive_json()["type"] == "playerJoined"

            guest.send_json({"type": "gameEnd", "winner": 2})
            assert host.receive_json()["winner"] == 2
            assert guest.receive_json()["type"] == "gameEnd"

            # after the grace delay the room is gone and both get the lobby list
            assert host.receive_json() == {"type": "roomList", "rooms": []}
            assert guest.receive_json() == {"type": "roomList", "rooms": []}

        assert client.get("/status").json()["rooms"] == 0


class TestMsgpackWireFormat:
    def test_binary_round_trip(self):
        app = create_app(settings=_settings(wire_format=WireFormat.MSGPACK))
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_bytes(msgpack.packb({"type": "createRoom", "roomType": "3player"}))

            created = msgpack.unpackb(ws.receive_bytes())

        assert created["type"] == "roomCreated"
        assert created["roomType"] == "3player"
        assert created["playerId"] == 1

import pytest

from relay.messaging.router import MessageRouter
from relay.session.manager import SessionManager
from relay.session.registry import RoomRegistry
from relay.tests.mocks import MockConnection


def _sequential_ids():
    counter = iter(range(1, 10_000))
    return lambda: f"ROOM{next(counter)}"


@pytest.fixture
def registry():
    return RoomRegistry(id_factory=_sequential_ids())


@pytest.fixture
def manager(registry):
    return SessionManager(registry, game_end_grace_seconds=0.01)


@pytest.fixture
def router(manager):
    return MessageRouter(manager)


@pytest.fixture
def make_connection(manager):
    """Build a MockConnection already registered with the manager."""

    def _make(connection_id: str | None = None) -> MockConnection:
        conn = MockConnection(connection_id)
        manager.register_connection(conn)
        return conn

    return _make

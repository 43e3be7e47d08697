"""
Unit tests for the WebSocket connection manager.
"""

import json
import pytest

from ailock.models.events import ChunkEvent, PongEvent
from ailock.models.user import Principal
from ailock.transport import ConnectionManager


class FakeWebSocket:
    """Records sent frames; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_text(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))


@pytest.fixture
def manager():
    return ConnectionManager()


class TestRooms:
    """Tests for join/leave bookkeeping."""

    def test_join_and_leave(self, manager):
        connection = manager.connect(FakeWebSocket(), Principal(user_id="alice"))
        assert not manager.is_listening("s1")

        manager.join(connection, "s1")
        assert manager.is_listening("s1")
        assert connection.sessions == {"s1"}

        manager.leave(connection, "s1")
        assert not manager.is_listening("s1")
        assert "s1" not in manager.rooms

    def test_disconnect_leaves_every_room(self, manager):
        connection = manager.connect(FakeWebSocket())
        manager.join(connection, "s1")
        manager.join(connection, "s2")

        manager.disconnect(connection)
        assert manager.rooms == {}
        assert manager.connections == {}

    def test_authenticated_flag(self, manager):
        assert manager.connect(FakeWebSocket()).authenticated is False
        assert manager.connect(FakeWebSocket(), Principal(user_id="bob")).authenticated is True


class TestEmit:
    """Tests for fan-out."""

    @pytest.mark.asyncio
    async def test_emit_reaches_joined_connections_in_order(self, manager):
        first, second, outsider = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        for socket in (first, second):
            manager.join(manager.connect(socket), "s1")
        manager.connect(outsider)

        await manager.emit("s1", ChunkEvent(session_id="s1", text="Hel"))
        await manager.emit("s1", ChunkEvent(session_id="s1", text="lo"))

        for socket in (first, second):
            assert [frame["text"] for frame in socket.sent] == ["Hel", "lo"]
            assert socket.sent[0]["type"] == "chunk"
        assert outsider.sent == []

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self, manager):
        broken = manager.connect(FakeWebSocket(fail=True))
        healthy_socket = FakeWebSocket()
        manager.join(broken, "s1")
        manager.join(manager.connect(healthy_socket), "s1")

        await manager.emit("s1", ChunkEvent(session_id="s1", text="x"))

        assert broken.connection_id not in manager.connections
        assert manager.rooms["s1"] == {c for c in manager.rooms["s1"] if c != broken.connection_id}
        assert len(healthy_socket.sent) == 1

    @pytest.mark.asyncio
    async def test_last_listener_dropped(self, manager):
        broken = manager.connect(FakeWebSocket(fail=True))
        manager.join(broken, "s1")
        await manager.emit("s1", ChunkEvent(session_id="s1", text="x"))
        assert not manager.is_listening("s1")

    @pytest.mark.asyncio
    async def test_send_personal(self, manager):
        socket = FakeWebSocket()
        connection = manager.connect(socket)
        await manager.send_personal(connection, PongEvent())
        assert socket.sent == [{"type": "pong"}]

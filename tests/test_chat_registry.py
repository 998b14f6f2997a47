from conftest import FakeConnection

from app.services.chat_registry import ChatRoomRegistry

PAYLOAD = {"type": "message", "groupId": "g1", "message": {"content": "hi"}}


async def test_broadcast_reaches_only_joined_connections():
    registry = ChatRoomRegistry()
    members = [FakeConnection(f"m{i}") for i in range(3)]
    stranger = FakeConnection("stranger")
    for connection in members:
        registry.join(connection, "g1")

    delivered = await registry.broadcast("g1", PAYLOAD)

    assert delivered == 3
    assert all(c.sent == [PAYLOAD] for c in members)
    assert stranger.sent == []

    for connection in members:
        registry.leave(connection)
    assert "g1" not in registry
    assert len(registry) == 0


async def test_broadcast_to_unknown_group_is_a_no_op():
    assert await ChatRoomRegistry().broadcast("nobody-here", PAYLOAD) == 0


def test_leave_is_idempotent_and_scoped():
    registry = ChatRoomRegistry()
    a, b = FakeConnection("a"), FakeConnection("b")
    registry.join(a, "g1")
    registry.join(b, "g2")

    assert registry.leave(a) == "g1"
    assert registry.leave(a) is None
    assert registry.leave(FakeConnection("never-joined")) is None

    assert "g1" not in registry
    assert registry.subscriber_count("g2") == 1
    assert registry.room_of(b) == "g2"


async def test_closed_and_broken_connections_do_not_stop_fan_out():
    registry = ChatRoomRegistry()
    healthy = FakeConnection("healthy")
    closed = FakeConnection("closed")
    broken = FakeConnection("broken", broken=True)
    for connection in (closed, broken, healthy):
        registry.join(connection, "g1")
    closed.disconnect()

    delivered = await registry.broadcast("g1", PAYLOAD)

    assert delivered == 1
    assert healthy.sent == [PAYLOAD]
    assert closed.sent == []


async def test_joining_another_group_moves_the_connection():
    registry = ChatRoomRegistry()
    connection = FakeConnection()
    registry.join(connection, "g1")
    registry.join(connection, "g2")

    assert "g1" not in registry
    assert registry.room_of(connection) == "g2"
    assert await registry.broadcast("g1", PAYLOAD) == 0
    assert await registry.broadcast("g2", PAYLOAD) == 1


async def test_leave_during_broadcast_does_not_disturb_iteration():
    registry = ChatRoomRegistry()
    late = FakeConnection("late")

    class LeavingConnection(FakeConnection):
        async def send_json(self, data, mode="text"):
            await super().send_json(data, mode)
            registry.leave(late)

    first = LeavingConnection("first")
    registry.join(first, "g1")
    registry.join(late, "g1")

    assert await registry.broadcast("g1", PAYLOAD) == 2
    assert registry.subscriber_count("g1") == 1


def test_close_clears_every_room():
    registry = ChatRoomRegistry()
    registry.join(FakeConnection("a"), "g1")
    registry.join(FakeConnection("b"), "g2")

    registry.close()

    assert len(registry) == 0

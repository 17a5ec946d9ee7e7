"""
Tests for the Presence Broadcaster
"""

import json

import pytest

from relay import ConnectionRegistry, Identity, PresenceBroadcaster, RoomDirectory


class MockWebSocket:
    """Mock WebSocket for testing."""

    def __init__(self):
        self.sent_messages = []

    async def send(self, message):
        self.sent_messages.append(message)


@pytest.fixture
def setup():
    registry = ConnectionRegistry()
    rooms = RoomDirectory()
    return registry, rooms, PresenceBroadcaster(registry, rooms)


def add_member(registry, rooms, username, room="lobby"):
    ws = MockWebSocket()
    channel_id = registry.attach(ws)
    if username:
        registry.register(channel_id, Identity(username, current_room=room))
    rooms.join(room, channel_id)
    return ws, channel_id


def test_member_names_use_placeholder_for_unidentified(setup):
    registry, rooms, presence = setup
    add_member(registry, rooms, "alice")
    add_member(registry, rooms, None)
    add_member(registry, rooms, "bob")

    names = presence.member_names("lobby")

    assert names == ["alice", "Anonymous", "bob"]
    assert len(names) == rooms.population("lobby")


@pytest.mark.asyncio
async def test_broadcast_sends_population_then_user_list(setup):
    registry, rooms, presence = setup
    ws_a, _ = add_member(registry, rooms, "alice")
    ws_b, _ = add_member(registry, rooms, "bob")
    ws_c, _ = add_member(registry, rooms, "carol", room="garden")

    await presence.broadcast("lobby")

    for ws in (ws_a, ws_b):
        assert [json.loads(m) for m in ws.sent_messages] == [
            {"type": "population", "room": "lobby", "count": 2},
            {"type": "userList", "room": "lobby", "users": ["alice", "bob"]},
        ]
    assert ws_c.sent_messages == []


@pytest.mark.asyncio
async def test_individual_broadcasts(setup):
    registry, rooms, presence = setup
    ws_a, _ = add_member(registry, rooms, "alice")

    await presence.broadcast_population("lobby")
    await presence.broadcast_member_list("lobby")

    assert [json.loads(m)["type"] for m in ws_a.sent_messages] == ["population", "userList"]


@pytest.mark.asyncio
async def test_broadcast_to_missing_room_is_noop(setup):
    _, _, presence = setup

    await presence.broadcast("nowhere")
    await presence.broadcast_population("nowhere")
    await presence.broadcast_member_list("nowhere")

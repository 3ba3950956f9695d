"""Tests covering relay room bookkeeping and the aiohttp app wiring."""
import asyncio

from aiohttp import test_utils

from peercall.services.relay_server import RoomRegistry, create_app


def test_first_join_creates_room():
    registry = RoomRegistry()

    result = registry.join("X", "a")

    assert result.outcome == "created"
    assert result.peers == []


def test_second_join_reports_existing_peer():
    registry = RoomRegistry()
    registry.join("X", "a")

    result = registry.join("X", "b")

    assert result.outcome == "joined"
    assert result.peers == ["a"]
    assert registry.peers_of("a") == ["b"]
    assert registry.peers_of("b") == ["a"]


def test_third_join_is_full():
    registry = RoomRegistry()
    registry.join("X", "a")
    registry.join("X", "b")

    result = registry.join("X", "c")

    assert result.outcome == "full"
    assert "c" not in registry.member_room
    assert registry.get_status() == {"X": 2}


def test_leave_frees_the_slot_and_drops_empty_rooms():
    registry = RoomRegistry()
    registry.join("X", "a")
    registry.join("X", "b")

    assert registry.leave("a") == "X"
    assert registry.join("X", "c").outcome == "joined"

    registry.leave("b")
    registry.leave("c")
    assert registry.rooms == {}
    assert registry.leave("c") is None


def test_joining_another_room_leaves_the_first():
    registry = RoomRegistry()
    registry.join("X", "a")

    registry.join("Y", "a")

    assert "X" not in registry.rooms
    assert registry.rooms["Y"] == ["a"]


def test_status_endpoint_reports_rooms():
    async def scenario():
        registry = RoomRegistry()
        registry.join("X", "a")
        client = test_utils.TestClient(test_utils.TestServer(create_app(registry)))
        await client.start_server()
        try:
            response = await client.get("/status")
            assert response.status == 200
            assert await response.json() == {"rooms": {"X": 1}}
        finally:
            await client.close()

    asyncio.run(scenario())

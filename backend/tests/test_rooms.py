"""Tests for conversation room membership."""
from relay.presence.rooms import RoomRouter


def test_join_and_leave_are_idempotent():
    """join/leave should report whether membership changed."""
    rooms = RoomRouter()
    assert rooms.join("conn-1", "c1") is True
    assert rooms.join("conn-1", "c1") is False
    assert rooms.members("c1") == frozenset({"conn-1"})

    assert rooms.leave("conn-1", "c1") is True
    assert rooms.leave("conn-1", "c1") is False
    assert rooms.members("c1") == frozenset()
    assert rooms.room_count() == 0


def test_broadcast_targets_exclude_originator():
    """broadcast_targets should drop the originating connection."""
    rooms = RoomRouter()
    rooms.join("conn-1", "c1")
    rooms.join("conn-2", "c1")
    rooms.join("conn-3", "c2")

    assert rooms.broadcast_targets("c1") == frozenset({"conn-1", "conn-2"})
    assert rooms.broadcast_targets("c1", exclude="conn-1") == frozenset({"conn-2"})
    assert rooms.broadcast_targets("missing") == frozenset()
    assert rooms.broadcast_targets(None) == frozenset()


def test_leave_all():
    """leave_all should empty every room of the connection and keep others."""
    rooms = RoomRouter()
    rooms.join("conn-1", "c1")
    rooms.join("conn-1", "c2")
    rooms.join("conn-2", "c2")

    assert rooms.leave_all("conn-1") == ["c1", "c2"]
    assert rooms.rooms_of("conn-1") == frozenset()
    assert rooms.members("c2") == frozenset({"conn-2"})
    assert rooms.leave_all("conn-1") == []


def test_is_member():
    rooms = RoomRouter()
    rooms.join("conn-1", "c1")
    assert rooms.is_member("conn-1", "c1")
    assert not rooms.is_member("conn-2", "c1")

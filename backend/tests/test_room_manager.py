"""Tests for the in-memory room registry."""
from ychat.services.room_manager import RoomManager


def usernames(members):
    return [member.username for member in members]


def test_join_creates_room_implicitly():
    registry = RoomManager()

    members = registry.join("lobby", "alice")

    assert usernames(members) == ["alice"]
    assert registry.get_room("lobby").member_count == 1


def test_repeated_join_is_idempotent():
    registry = RoomManager()

    for _ in range(3):
        registry.join("lobby", "alice")
    registry.join("lobby", "bob")
    members = registry.join("lobby", "alice")

    assert usernames(members) == ["alice", "bob"]
    assert registry.get_room("lobby").member_count == 2


def test_rejoin_refreshes_avatar_but_keeps_position():
    registry = RoomManager()
    registry.join("lobby", "alice", "/blobs/old")
    registry.join("lobby", "bob")

    members = registry.join("lobby", "alice", "/blobs/new")

    assert usernames(members) == ["alice", "bob"]
    assert members[0].avatarRef == "/blobs/new"


def test_leave_removes_member():
    registry = RoomManager()
    registry.join("lobby", "alice")
    registry.join("lobby", "bob")

    members = registry.leave("lobby", "alice")

    assert usernames(members) == ["bob"]
    assert registry.get_room("lobby").member_count == 1


def test_leave_absent_member_is_noop():
    registry = RoomManager()
    registry.join("lobby", "alice")

    assert usernames(registry.leave("lobby", "zed")) == ["alice"]
    assert registry.leave("nowhere", "alice") == []


def test_empty_room_keeps_its_shell():
    registry = RoomManager()
    registry.join("lobby", "alice")
    registry.leave("lobby", "alice")

    room = registry.get_room("lobby")
    assert room is not None
    assert room.member_count == 0
    assert [r.name for r in registry.list_rooms()] == ["lobby"]


def test_members_of_is_a_snapshot():
    registry = RoomManager()
    registry.join("lobby", "alice", "/blobs/a")

    snapshot = registry.members_of("lobby")
    snapshot[0].avatarRef = "tampered"
    snapshot.append(snapshot[0])

    assert usernames(registry.members_of("lobby")) == ["alice"]
    assert registry.members_of("lobby")[0].avatarRef == "/blobs/a"


def test_rooms_are_independent():
    registry = RoomManager()
    registry.join("lobby", "alice")
    registry.join("games", "alice")
    registry.leave("games", "alice")

    assert usernames(registry.members_of("lobby")) == ["alice"]
    assert registry.members_of("games") == []
    assert registry.get_room("unknown") is None

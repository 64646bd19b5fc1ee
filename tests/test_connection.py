"""Tests for the connection manager using the in-memory peer."""

import pytest
from structlog.testing import capture_logs

from fourinarow.connection import ConnectionManager, build_socket_url
from fourinarow.protocol import Move
from fourinarow.session import ChannelClosed, ChannelOpened, MatchStarted, StateUpdated


def manager_for(peer):
    events = []
    manager = ConnectionManager("ws://peer/ws", events.append, connector=peer)
    return manager, events


def closed_events(events):
    return [event for event in events if isinstance(event, ChannelClosed)]


def test_build_socket_url_encodes_identity():
    assert build_socket_url("ws://peer/ws", "alice") == "ws://peer/ws?username=alice"
    assert build_socket_url("ws://peer/ws?v=2", "a b&c") == "ws://peer/ws?v=2&username=a+b%26c"


@pytest.mark.asyncio
async def test_open_passes_identity_and_signals_open(peer):
    manager, events = manager_for(peer)
    channel = manager.open("alice", 1)
    assert not channel.is_open

    await peer.until(lambda: events)
    assert peer.urls == ["ws://peer/ws?username=alice"]
    assert events == [ChannelOpened(1)]
    assert channel.is_open
    await manager.close()


@pytest.mark.asyncio
async def test_frames_are_dispatched_in_order(peer, frames):
    manager, events = manager_for(peer)
    manager.open("alice", 3)
    await peer.until(lambda: peer.socket is not None)
    peer.socket.push(frames.match_start("r1", "bob", player=1))
    peer.socket.push(frames.state(current_player=2))
    await peer.until(lambda: len(events) == 3)

    assert events[1] == MatchStarted(3, room_id="r1", opponent="bob", seat=1)
    assert isinstance(events[2], StateUpdated)
    assert events[2].generation == 3
    assert events[2].snapshot.current_player == 2
    await manager.close()


@pytest.mark.asyncio
async def test_malformed_frames_are_logged_and_dropped(peer, frames):
    manager, events = manager_for(peer)
    channel = manager.open("alice", 1)
    await peer.until(lambda: peer.socket is not None)
    with capture_logs() as logs:
        peer.socket.push("{broken")
        peer.socket.push({"type": "CHAT", "text": "hello"})
        peer.socket.push(frames.match_start())
        await peer.until(lambda: len(events) == 2)

    assert isinstance(events[1], MatchStarted)
    assert channel.is_open
    assert [entry["event"] for entry in logs].count("Dropping malformed frame") == 2
    await manager.close()


@pytest.mark.asyncio
async def test_deeply_nested_frame_keeps_channel_open(peer, frames):
    manager, events = manager_for(peer)
    channel = manager.open("alice", 1)
    await peer.until(lambda: peer.socket is not None)
    nested = "[" * 100000 + "]" * 100000
    with capture_logs() as logs:
        peer.socket.push('{"type": "GAME_STATE", "payload": ' + nested + "}")
        peer.socket.push(frames.match_start())
        await peer.until(lambda: len(events) == 2)

    assert isinstance(events[1], MatchStarted)
    assert closed_events(events) == []
    assert channel.is_open
    assert [entry["event"] for entry in logs].count("Dropping malformed frame") == 1
    await manager.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(peer):
    manager, events = manager_for(peer)
    channel = manager.open("alice", 1)
    await peer.until(lambda: events)
    socket = peer.socket

    await manager.close()
    await manager.close()

    assert socket.closed
    assert channel.closed
    assert manager.channel is None
    assert closed_events(events) == [ChannelClosed(1, reason="closed locally")]


@pytest.mark.asyncio
async def test_close_while_connecting(peer):
    peer.stall = True
    manager, events = manager_for(peer)
    manager.open("alice", 1)
    await peer.until(lambda: peer.urls)

    await manager.close()
    assert events == [ChannelClosed(1, reason="closed locally")]


@pytest.mark.asyncio
async def test_no_frames_after_close(peer, frames):
    manager, events = manager_for(peer)
    manager.open("alice", 1)
    await peer.until(lambda: events)
    socket = peer.socket
    await manager.close()

    socket.push(frames.match_start())
    await manager.send(Move(column=0, room_id="r1"))
    assert len(events) == 2
    assert socket.sent == []


@pytest.mark.asyncio
async def test_connect_failure_reports_close(peer):
    peer.refuse = True
    manager, events = manager_for(peer)
    channel = manager.open("alice", 1)
    await peer.until(lambda: events)

    assert len(events) == 1
    assert isinstance(events[0], ChannelClosed)
    assert events[0].reason.startswith("connect failed")
    assert channel.closed


@pytest.mark.asyncio
async def test_peer_hang_up_reports_close_once(peer):
    manager, events = manager_for(peer)
    manager.open("alice", 1)
    await peer.until(lambda: events)
    peer.socket.hang_up()
    await peer.until(lambda: closed_events(events))

    await manager.close()
    assert closed_events(events) == [ChannelClosed(1, reason="closed by peer")]


@pytest.mark.asyncio
async def test_transport_error_reports_close(peer):
    manager, events = manager_for(peer)
    manager.open("alice", 1)
    await peer.until(lambda: events)
    peer.socket.break_with(ConnectionResetError("reset by peer"))
    await peer.until(lambda: closed_events(events))
    assert "reset by peer" in closed_events(events)[0].reason


@pytest.mark.asyncio
async def test_send_encodes_move(peer):
    manager, events = manager_for(peer)
    manager.open("alice", 1)
    await peer.until(lambda: events)

    assert await manager.send(Move(column=5, room_id="r1"))
    assert peer.socket.sent == [{"type": "MOVE", "payload": {"column": 5, "roomId": "r1"}}]
    await manager.close()


@pytest.mark.asyncio
async def test_send_without_channel_returns_false(peer):
    manager, _ = manager_for(peer)
    with capture_logs() as logs:
        assert await manager.send(Move(column=0, room_id="r1")) is False
    assert logs[0]["log_level"] == "warning"


@pytest.mark.asyncio
async def test_reopen_replaces_previous_channel(peer):
    manager, events = manager_for(peer)
    first = manager.open("alice", 1)
    await peer.until(lambda: events)
    first_socket = peer.socket

    second = manager.open("alice", 2)
    await peer.until(lambda: ChannelOpened(2) in events)
    await peer.until(lambda: first_socket.closed)

    assert first.closed
    assert manager.channel is second
    assert closed_events(events) == [ChannelClosed(1, reason="replaced")]
    await manager.close()

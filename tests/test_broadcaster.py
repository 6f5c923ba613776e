"""
Tests for the event broadcaster.

Tests cover:
- Late-join replay order
- Fan-out to every observer
- Lagging observers dropping events
- Redis monitoring mirror
"""

import json
from unittest.mock import AsyncMock

import pytest

from conftest import drain
from sessiongate.modules.api.models import SessionEvent, SessionSnapshot, SessionStatus
from sessiongate.modules.broadcast import EventBroadcaster

USER = {"id": "123@s.whatsapp.net"}


def test_join_replays_status_only_when_idle(broadcaster):
    observer = broadcaster.join(SessionSnapshot())

    assert drain(observer) == [("status-update", {"status": "disconnected"})]
    assert broadcaster.observer_count == 1


def test_join_replays_status_then_qr(broadcaster):
    snapshot = SessionSnapshot(status=SessionStatus.CONNECTING, qr="qr-1", has_connection=True)

    observer = broadcaster.join(snapshot)

    assert drain(observer) == [
        ("status-update", {"status": "connecting"}),
        ("qr-code", "qr-1"),
    ]


def test_join_replays_status_then_pairing_code(broadcaster):
    snapshot = SessionSnapshot(status=SessionStatus.CONNECTING, code="ABCD-1234")

    observer = broadcaster.join(snapshot)

    assert drain(observer) == [
        ("status-update", {"status": "connecting"}),
        ("pairing-code", "ABCD-1234"),
    ]


def test_join_replays_user_when_connected(broadcaster):
    snapshot = SessionSnapshot(status=SessionStatus.CONNECTED, user=USER)

    observer = broadcaster.join(snapshot)

    assert drain(observer) == [("status-update", {"status": "connected", "user": USER})]


@pytest.mark.asyncio
async def test_broadcast_reaches_every_observer(broadcaster):
    first = broadcaster.join(SessionSnapshot())
    second = broadcaster.join(SessionSnapshot())
    drain(first)
    drain(second)

    await broadcaster.broadcast(SessionEvent.QR, "qr-2")

    assert drain(first) == [("qr-code", "qr-2")]
    assert drain(second) == [("qr-code", "qr-2")]


@pytest.mark.asyncio
async def test_left_observer_receives_nothing(broadcaster):
    observer = broadcaster.join(SessionSnapshot())
    drain(observer)

    broadcaster.leave(observer)
    broadcaster.leave(observer)
    await broadcaster.broadcast(SessionEvent.QR, "qr-3")

    assert broadcaster.observer_count == 0
    assert drain(observer) == []


@pytest.mark.asyncio
async def test_lagging_observer_misses_events():
    broadcaster = EventBroadcaster(queue_size=3)
    slow = broadcaster.join(SessionSnapshot())

    for i in range(5):
        await broadcaster.broadcast(SessionEvent.QR, f"qr-{i}")

    events = drain(slow)
    assert events == [
        ("status-update", {"status": "disconnected"}),
        ("qr-code", "qr-0"),
        ("qr-code", "qr-1"),
    ]


@pytest.mark.asyncio
async def test_next_event_waits_for_delivery(broadcaster):
    observer = broadcaster.join(SessionSnapshot())
    drain(observer)

    await broadcaster.broadcast(SessionEvent.PAIRING_CODE, "WXYZ-0000")

    assert await observer.next_event() == ("pairing-code", "WXYZ-0000")


@pytest.mark.asyncio
async def test_events_are_mirrored_to_redis(mock_redis):
    broadcaster = EventBroadcaster(redis_client=mock_redis)

    await broadcaster.broadcast(SessionEvent.STATUS, {"status": "connecting"})

    channel, record = mock_redis.publish.call_args[0]
    assert channel == "events:session"
    event = json.loads(record)
    assert event["type"] == "status-update"
    assert event["data"] == {"status": "connecting"}
    assert "timestamp" in event
    mock_redis.lpush.assert_awaited_once_with("session:events", record)
    mock_redis.ltrim.assert_awaited_once_with("session:events", 0, 999)


@pytest.mark.asyncio
async def test_mirror_failure_does_not_block_observers(mock_redis):
    mock_redis.publish = AsyncMock(side_effect=ConnectionError("redis down"))
    broadcaster = EventBroadcaster(redis_client=mock_redis)
    observer = broadcaster.join(SessionSnapshot())
    drain(observer)

    await broadcaster.broadcast(SessionEvent.QR, "qr-4")

    assert drain(observer) == [("qr-code", "qr-4")]


@pytest.mark.asyncio
async def test_recent_events(mock_redis):
    mock_redis.lrange.return_value = [json.dumps({"type": "qr-code", "data": "qr-5"})]
    broadcaster = EventBroadcaster(redis_client=mock_redis)

    events = await broadcaster.recent_events(limit=10)

    assert events == [{"type": "qr-code", "data": "qr-5"}]
    mock_redis.lrange.assert_awaited_once_with("session:events", 0, 9)


@pytest.mark.asyncio
async def test_recent_events_without_redis(broadcaster):
    assert await broadcaster.recent_events() == []

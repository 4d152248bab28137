"""Subscriber registry and SSE body generator."""

import asyncio

import pytest

from serial2sse.broadcast import (
    SSE_OPEN_COMMENT,
    BroadcastRegistry,
    QueueStream,
    event_stream,
)

from conftest import BrokenStream, RecordingStream


def test_broadcast_reaches_every_subscriber():
    registry = BroadcastRegistry()
    a, b = RecordingStream(), RecordingStream()
    registry.subscribe(a)
    registry.subscribe(b)

    assert registry.broadcast([1, 2, 3]) == 2
    assert a.frames == ["data: 1,2,3\n\n"]
    assert b.frames == ["data: 1,2,3\n\n"]


def test_unsubscribe_is_idempotent():
    registry = BroadcastRegistry()
    stream = RecordingStream()
    registry.subscribe(stream)
    registry.unsubscribe(stream)
    registry.unsubscribe(stream)
    registry.unsubscribe(RecordingStream())

    assert len(registry) == 0
    assert registry.broadcast([1]) == 0
    assert stream.frames == []


def test_subscribing_twice_keeps_one_entry():
    registry = BroadcastRegistry()
    stream = RecordingStream()
    registry.subscribe(stream)
    registry.subscribe(stream)
    registry.broadcast([4])
    assert stream.frames == ["data: 4\n\n"]


def test_failing_subscriber_is_isolated_and_dropped():
    registry = BroadcastRegistry()
    broken, healthy = BrokenStream(), RecordingStream()
    registry.subscribe(broken)
    registry.subscribe(healthy)

    assert registry.broadcast([9]) == 1
    assert healthy.frames == ["data: 9\n\n"]
    assert broken not in registry
    assert broken.closed
    assert not healthy.closed

    registry.broadcast([10])
    assert broken.attempts == 1
    assert len(healthy.frames) == 2


def test_queue_stream_overflow_drops_subscriber():
    registry = BroadcastRegistry()
    stream = QueueStream(maxsize=1)
    registry.subscribe(stream)
    registry.broadcast([1])
    registry.broadcast([2])
    assert stream not in registry


def test_subscriber_removed_during_fanout():
    registry = BroadcastRegistry()
    late = RecordingStream()

    class Leaver(RecordingStream):
        def write(self, frame):
            super().write(frame)
            registry.unsubscribe(late)

    registry.subscribe(Leaver())
    registry.subscribe(late)
    registry.broadcast([1])
    assert late not in registry


@pytest.mark.asyncio
async def test_event_stream_registers_and_unregisters():
    registry = BroadcastRegistry()
    stream = QueueStream()
    body = event_stream(registry, stream)

    assert await body.__anext__() == SSE_OPEN_COMMENT
    assert stream in registry

    registry.broadcast([5, 6])
    assert await asyncio.wait_for(body.__anext__(), 1) == "data: 5,6\n\n"

    await body.aclose()
    assert stream not in registry


@pytest.mark.asyncio
async def test_event_stream_ends_after_subscriber_is_dropped():
    registry = BroadcastRegistry()
    stream = QueueStream(maxsize=1)
    body = event_stream(registry, stream)
    assert await body.__anext__() == SSE_OPEN_COMMENT

    registry.broadcast([1])
    registry.broadcast([2])
    assert stream not in registry

    assert await asyncio.wait_for(body.__anext__(), 1) == "data: 1\n\n"
    registry.broadcast([3])
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(body.__anext__(), 1)


@pytest.mark.asyncio
async def test_closing_idle_stream_wakes_reader():
    stream = QueueStream()
    reader = asyncio.ensure_future(stream.read())
    await asyncio.sleep(0)
    stream.close()
    stream.close()
    assert await asyncio.wait_for(reader, 1) is None
    assert await stream.read() is None

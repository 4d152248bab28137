"""Fan-out of completed batches to live Server-Sent Events subscribers."""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Protocol, Set

from serial2sse.pipeline import format_event

logger = logging.getLogger("serial2sse.broadcast")

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_OPEN_COMMENT = ": connected\n\n"

DEFAULT_STREAM_QUEUE = 100


class Stream(Protocol):
    def write(self, frame: str) -> None: ...

    def close(self) -> None: ...


class QueueStream:
    """One subscriber: frames are queued here until its response reads them."""

    def __init__(self, maxsize: int = DEFAULT_STREAM_QUEUE):
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize)
        self.closed = False

    def write(self, frame: str) -> None:
        """Queue a frame without blocking; raises asyncio.QueueFull if the reader lags."""
        self._queue.put_nowait(frame)

    async def read(self) -> Optional[str]:
        """Next queued frame, or None once the stream is closed and drained."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Stop the stream; frames already queued are still delivered."""
        if self.closed:
            return
        self.closed = True
        if not self._queue.full():
            self._queue.put_nowait(None)


class BroadcastRegistry:
    """Set of subscribed streams, keyed by the stream object itself."""

    def __init__(self):
        self._streams: Set[Stream] = set()

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, stream: object) -> bool:
        return stream in self._streams

    def subscribe(self, stream: Stream) -> None:
        self._streams.add(stream)
        logger.info("Subscriber joined (%d active)", len(self._streams))

    def unsubscribe(self, stream: Stream) -> None:
        if stream in self._streams:
            self._streams.discard(stream)
            logger.info("Subscriber left (%d active)", len(self._streams))

    def broadcast(self, batch: List[int]) -> int:
        """Write batch to every subscriber; return how many accepted it.

        A failing subscriber is dropped and never affects the others.
        """
        frame = format_event(batch)
        delivered = 0
        for stream in list(self._streams):
            try:
                stream.write(frame)
            except Exception as e:
                logger.info("Dropping subscriber after write failure: %r", e)
                self.unsubscribe(stream)
                stream.close()
            else:
                delivered += 1
        return delivered


async def event_stream(
    registry: BroadcastRegistry, stream: Optional[QueueStream] = None
) -> AsyncIterator[str]:
    """Response body for one subscriber; runs until the client goes away."""
    if stream is None:
        stream = QueueStream()
    registry.subscribe(stream)
    try:
        yield SSE_OPEN_COMMENT
        while True:
            frame = await stream.read()
            if frame is None:
                return
            yield frame
    finally:
        registry.unsubscribe(stream)

"""Bounded channel carrying orchestrator events to a single consumer."""

import asyncio
from typing import AsyncIterator, Optional

from ..entities import ResponseEvent
from ..errors import ChannelClosedError

_END = object()


class EventChannel:
    """Single-producer, single-consumer event queue with backpressure.

    ``send`` suspends while the buffer is full. Once the consumer calls
    ``close`` every pending and future ``send`` raises ChannelClosedError.
    The producer calls ``finish`` to end the consumer's iteration.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, event: ResponseEvent) -> None:
        await self._put(event)

    async def finish(self) -> None:
        """Signal the end of the stream; a no-op if the consumer already left."""
        try:
            await self._put(_END)
        except ChannelClosedError:
            pass

    def close(self) -> None:
        """Called by the consumer when it stops reading."""
        self._closed.set()

    async def receive(self) -> Optional[ResponseEvent]:
        """Return the next event, or None once the producer finished."""
        item = await self._queue.get()
        if item is _END:
            return None
        return item  # type: ignore[return-value]

    async def __aiter__(self) -> AsyncIterator[ResponseEvent]:
        while True:
            event = await self.receive()
            if event is None:
                return
            yield event

    async def _put(self, item: object) -> None:
        if self._closed.is_set():
            raise ChannelClosedError("Event consumer closed the channel")
        try:
            self._queue.put_nowait(item)
            return
        except asyncio.QueueFull:
            pass

        put = asyncio.ensure_future(self._queue.put(item))
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            put.cancel()
            closed.cancel()
        if put not in done:
            raise ChannelClosedError("Event consumer closed the channel")

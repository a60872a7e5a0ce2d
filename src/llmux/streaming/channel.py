"""Bounded single-consumer channel for stream chunks."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from llmux.errors import ChannelClosedError

if TYPE_CHECKING:
    from llmux.types import StreamChunk

DEFAULT_CAPACITY = 16


class ChunkChannel:
    """Bounded FIFO of `StreamChunk` values with an explicit close.

    One producer (the stream worker) sends and closes; one consumer receives
    or iterates with ``async for``. Iteration ends once the channel is closed
    and drained. Closing twice is a contract violation and raises.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._queue: asyncio.Queue[StreamChunk] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._close_event = asyncio.Event()

    @property
    def capacity(self) -> int:
        """Maximum number of undelivered chunks."""
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        """Whether `close` has been called."""
        return self._closed

    async def send(self, chunk: StreamChunk) -> None:
        """Enqueue *chunk*, waiting while the channel is full.

        Raises:
            ChannelClosedError: If the channel is already closed.
        """
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        await self._queue.put(chunk)

    def close(self) -> None:
        """Mark the end of the stream.

        Raises:
            ChannelClosedError: If the channel was already closed.
        """
        if self._closed:
            raise ChannelClosedError("channel closed twice")
        self._closed = True
        self._close_event.set()

    async def receive(self) -> StreamChunk:
        """Return the next chunk.

        Raises:
            ChannelClosedError: Once the channel is closed and drained.
        """
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._closed:
                raise ChannelClosedError("channel closed")

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._close_event.wait())
            try:
                await asyncio.wait(
                    {getter, closer}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closer.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()

    def __aiter__(self) -> ChunkChannel:
        return self

    async def __anext__(self) -> StreamChunk:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None

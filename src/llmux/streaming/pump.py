"""Drive one stream from vendor frames into a caller's `ChunkChannel`.

On every exit path the channel is closed exactly once and the transport
scope is exited:

- success: zero or more fragments, then one finality marker;
- failure: zero or more fragments, then one error chunk, then the error is
  raised to the worker's awaiter;
- cancel signal: no further reads or deliveries, `StreamCancelledError` is
  raised;
- task cancellation: `asyncio.CancelledError` propagates untouched.

Delivery waits for room in the sink, the error chunk included. The consumer
must drain the channel concurrently with `StreamPump.run`; otherwise pass a
cancel event so a stalled consumer can release the pump.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from llmux.errors import LlmuxError, StreamCancelledError, StreamFatalError
from llmux.types import StreamChunk

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from contextlib import AbstractAsyncContextManager

    from llmux.streaming.channel import ChunkChannel
    from llmux.streaming.normalize import DeltaNormalizer

log = logging.getLogger(__name__)


class StreamPump:
    """Single-use bridge between a frame source and a chunk channel."""

    def __init__(
        self,
        sink: ChunkChannel,
        *,
        vendor: str,
        cancel: asyncio.Event | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sink = sink
        self._vendor = vendor
        self._cancel = cancel
        self._log = logger or log
        self.fragments = 0

    @property
    def cancelled(self) -> bool:
        """Whether the caller's cancel signal is set."""
        return self._cancel is not None and self._cancel.is_set()

    async def run(
        self,
        open_frames: Callable[[], AbstractAsyncContextManager[AsyncIterator[Any]]],
        normalizer: DeltaNormalizer,
    ) -> None:
        """Pump frames from ``open_frames()`` through *normalizer* into the sink.

        ``open_frames`` is called inside the guarded scope, so request-build
        and connection errors are delivered like any other failure.
        Run it concurrently with the channel's consumer: a full sink blocks
        every send, including the final error chunk, until a chunk is taken
        or the cancel signal fires.

        Raises:
            StreamCancelledError: When the caller's cancel signal fires.
            StreamFatalError: For transport read failures and vendor error frames.
            LlmuxError: For build or vendor status errors raised while opening.
        """
        try:
            async with open_frames() as frames:
                async for frame in frames:
                    self._check_cancel()
                    delta = normalizer.feed(frame)
                    if delta.text:
                        self.fragments += 1
                        await self._send(StreamChunk.fragment(delta.text))
                    if delta.terminal:
                        break
            self._check_cancel()
            if self.fragments == 0 and normalizer.reasoning_chars:
                self._log.warning(
                    "[%s] Stream produced reasoning but no content; token budget may be insufficient",
                    self._vendor,
                )
            await self._send(StreamChunk.final())
        except asyncio.CancelledError:
            raise
        except StreamCancelledError:
            self._log.info("[%s] Stream cancelled by caller", self._vendor)
            raise
        except LlmuxError as exc:
            await self._fail(exc)
            raise
        except Exception as exc:
            err = StreamFatalError(f"{self._vendor} stream read failed: {exc}")
            await self._fail(err)
            raise err from exc
        finally:
            self._close_sink()

    def _check_cancel(self) -> None:
        if self.cancelled:
            raise StreamCancelledError(f"{self._vendor} stream cancelled")

    async def _send(self, chunk: StreamChunk) -> None:
        """Deliver *chunk*, racing the caller's cancel signal."""
        self._check_cancel()
        if self._cancel is None:
            await self._sink.send(chunk)
            return

        sender = asyncio.ensure_future(self._sink.send(chunk))
        waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({sender, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not sender.done():
                sender.cancel()
        if sender.done() and not sender.cancelled():
            sender.result()
            return
        raise StreamCancelledError(f"{self._vendor} stream cancelled")

    async def _fail(self, exc: LlmuxError) -> None:
        self._log.warning("[%s] Stream failed: %s", self._vendor, exc)
        try:
            await self._send(StreamChunk.failure(exc))
        except StreamCancelledError:
            self._log.debug("[%s] Caller cancelled before the error was delivered", self._vendor)

    def _close_sink(self) -> None:
        if self._sink.closed:
            self._log.warning("[%s] Sink was closed by another party", self._vendor)
            return
        self._sink.close()

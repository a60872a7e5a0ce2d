"""Shared generate/stream flow parameterized by vendor capabilities.

Vendor adapters subclass `BaseProvider` and supply four hooks:

- ``build_request`` turns a prompt and options into a `WireRequest`;
- ``_send`` performs a non-streaming call and returns the raw response;
- ``parse_response`` reduces that raw response to a `ParsedResponse`;
- ``_open_frames`` opens a streaming call as an async context manager that
  yields the vendor's frame iterator and releases the transport on exit.

Everything else (option resolution, error mapping, response assembly, usage
tracking, channel delivery) lives here once.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import json
import logging
from typing import TYPE_CHECKING, Any

from llmux.errors import ChannelClosedError, LlmuxError
from llmux.options import GenerationOptions
from llmux.providers._errors import wrap_vendor_error
from llmux.response import assemble_response
from llmux.streaming.channel import DEFAULT_CAPACITY, ChunkChannel
from llmux.streaming.normalize import ChatDeltaNormalizer
from llmux.streaming.pump import StreamPump
from llmux.usage import UsageTracker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

    from llmux.config import VendorConfig
    from llmux.options import OptionOverride
    from llmux.providers.base import VendorCapabilities
    from llmux.providers.models import ParsedResponse, WireRequest
    from llmux.streaming.normalize import DeltaNormalizer
    from llmux.types import GenerationResult, StreamChunk
    from llmux.usage import UsageInfo

log = logging.getLogger(__name__)

_PREVIEW_CHARS = 200


class BaseProvider:
    """Common provider engine; one instance per vendor connection."""

    def __init__(
        self,
        config: VendorConfig,
        capabilities: VendorCapabilities,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._capabilities = capabilities
        self._log = logger or log

    @property
    def model(self) -> str:
        """Vendor model identifier used for every request."""
        return self._config.resolved_model

    @property
    def vendor(self) -> str:
        """Vendor name used in log and error messages."""
        return self._capabilities.vendor

    @property
    def capabilities(self) -> VendorCapabilities:
        """Return supported feature flags."""
        return self._capabilities

    def default_options(self) -> GenerationOptions:
        """Vendor defaults that caller overrides are applied on top of."""
        return GenerationOptions()

    def resolve_options(
        self,
        overrides: tuple[OptionOverride, ...],
        options: GenerationOptions | None = None,
    ) -> GenerationOptions:
        """Return *options* (or the vendor defaults) with *overrides* applied."""
        base = options if options is not None else self.default_options()
        return base.apply(*overrides) if overrides else base

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    def build_request(
        self, prompt: str, options: GenerationOptions, *, stream: bool
    ) -> WireRequest:
        """Build the vendor wire request."""
        raise NotImplementedError

    async def _send(self, request: WireRequest) -> Any:
        raise NotImplementedError

    def parse_response(self, raw: Any) -> ParsedResponse:
        """Reduce a raw vendor response to its text, tool calls, and usage."""
        raise NotImplementedError

    def _open_frames(
        self, request: WireRequest
    ) -> AbstractAsyncContextManager[AsyncIterator[Any]]:
        raise NotImplementedError

    def new_normalizer(self, tracker: UsageTracker) -> DeltaNormalizer:
        """Return a fresh normalizer for one stream."""
        return ChatDeltaNormalizer(
            tracker,
            vendor=self.vendor,
            reasoning_field=self._capabilities.reasoning_field,
            logger=self._log,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        *overrides: OptionOverride,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        """Generate a complete response.

        Raises:
            ConfigurationError: For invalid options.
            RequestBuildError: When a schema or tool cannot be encoded.
            VendorAPIError: For a non-2xx vendor response.
            TransportError: For network failures.
            EmptyContentError: When the vendor returned no usable content.
        """
        resolved = self.resolve_options(overrides, options)
        request = self.build_request(prompt, resolved, stream=False)
        self._log.debug(
            "[%s] Sending request to %s: %s",
            self.vendor,
            request.endpoint,
            _preview(request.payload),
        )

        try:
            raw = await self._send(request)
        except asyncio.CancelledError:
            raise
        except LlmuxError:
            raise
        except Exception as e:
            raise wrap_vendor_error(e, vendor=self.vendor, phase="generate") from e

        parsed = self.parse_response(raw)
        result = assemble_response(
            parsed, resolved, vendor=self.vendor, logger=self._log
        )
        self._log.debug(
            "[%s] Generation finished: tool_call=%s usage=%s",
            self.vendor,
            result.is_tool_call,
            result.usage.as_dict(),
        )
        return result

    async def stream(
        self,
        prompt: str,
        sink: ChunkChannel,
        *overrides: OptionOverride,
        options: GenerationOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> UsageInfo:
        """Stream text chunks into *sink* and return the call's usage.

        This is the worker body for one streaming call. *sink* is closed
        exactly once before this coroutine returns or raises. It must run
        alongside the consumer of *sink*, which blocks delivery once full.

        Raises:
            StreamCancelledError: When *cancel* is set during the stream.
            StreamFatalError: For transport read failures or vendor error frames.
            LlmuxError: For option, build, or vendor status errors.
        """
        tracker = UsageTracker()
        pump = StreamPump(sink, vendor=self.vendor, cancel=cancel, logger=self._log)

        @asynccontextmanager
        async def open_frames() -> AsyncIterator[AsyncIterator[Any]]:
            resolved = self.resolve_options(overrides, options)
            request = self.build_request(prompt, resolved, stream=True)
            self._log.debug(
                "[%s] Opening stream to %s: %s",
                self.vendor,
                request.endpoint,
                _preview(request.payload),
            )
            async with self._open_frames(request) as frames:
                yield frames

        await pump.run(open_frames, self.new_normalizer(tracker))
        if not tracker.reported:
            self._log.debug("[%s] Stream reported no usage", self.vendor)
        return tracker.usage

    def stream_text(
        self,
        prompt: str,
        *overrides: OptionOverride,
        options: GenerationOptions | None = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> TextStream:
        """Start a streaming call on a worker task and return its chunk iterator.

        Example:
            async with provider.stream_text("Hello") as chunks:
                async for chunk in chunks:
                    if chunk.text:
                        print(chunk.text, end="")
            print(chunks.usage)
        """
        channel = ChunkChannel(capacity)
        cancel = asyncio.Event()
        worker = asyncio.ensure_future(
            self.stream(prompt, channel, *overrides, options=options, cancel=cancel)
        )
        return TextStream(channel, worker, cancel)

    async def aclose(self) -> None:
        """Close underlying transport resources."""


class TextStream:
    """Chunks of one streaming call, produced by a dedicated worker task.

    Iteration ends after the finality marker or the error chunk. Once it
    ends, ``usage`` holds the call's usage (success) or ``error`` the raised
    error (failure). Leaving an ``async with`` block early cancels the worker.
    """

    def __init__(
        self,
        channel: ChunkChannel,
        worker: asyncio.Future[UsageInfo],
        cancel: asyncio.Event,
    ) -> None:
        self._channel = channel
        self._worker = worker
        self._cancel = cancel
        self.usage: UsageInfo | None = None
        self.error: BaseException | None = None

    def __aiter__(self) -> TextStream:
        return self

    async def __anext__(self) -> StreamChunk:
        try:
            return await self._channel.receive()
        except ChannelClosedError:
            await self._settle()
            raise StopAsyncIteration from None

    async def __aenter__(self) -> TextStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the worker if it is still running and wait for it to exit."""
        if not self._worker.done():
            self._cancel.set()
            self._worker.cancel()
        await self._settle()

    async def _settle(self) -> None:
        await asyncio.wait({self._worker})
        if self._worker.cancelled():
            return
        exc = self._worker.exception()
        if exc is None:
            self.usage = self._worker.result()
        else:
            self.error = exc


def _preview(payload: dict[str, Any]) -> str:
    text = json.dumps(payload, ensure_ascii=False, default=str)
    if len(text) > _PREVIEW_CHARS:
        return f"{text[:_PREVIEW_CHARS]}..."
    return text

"""Reduce vendor stream frames to visible text deltas.

Only the visible content channel is ever emitted. Reasoning sub-channels
(``reasoning_content``, ``reasoning``, Claude ``thinking_delta``) are counted
for diagnostics and dropped, even when the visible content of the same frame
is empty. Usage carried by any frame is folded into the call's
`UsageTracker` independently of text.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Protocol

from llmux.errors import StreamFatalError
from llmux.streaming.sse import SSEEvent
from llmux.usage import chat_usage_counts, field_value, messages_usage_counts

if TYPE_CHECKING:
    from llmux.usage import UsageTracker

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delta:
    """What one frame contributes to the stream."""

    text: str = ""
    #: The frame ends the stream (named terminal event).
    terminal: bool = False


_NOTHING = Delta()


class DeltaNormalizer(Protocol):
    """Per-call frame normalizer; one instance per stream."""

    #: Characters of reasoning text seen and suppressed so far.
    reasoning_chars: int

    def feed(self, frame: Any) -> Delta:
        """Return the visible delta for *frame*.

        Raises:
            StreamFatalError: For a vendor error frame.
        """
        ...


class ChatDeltaNormalizer:
    """Normalizer for OpenAI-style ``choices[0].delta`` chunks.

    Accepts decoded SSE payloads (dicts) and typed SDK chunk objects alike.
    A chunk carrying usage with no choices is the vendor's authoritative
    trailing usage report.
    """

    def __init__(
        self,
        tracker: UsageTracker,
        *,
        vendor: str,
        reasoning_field: str | None = "reasoning_content",
        logger: logging.Logger | None = None,
    ) -> None:
        self._tracker = tracker
        self._vendor = vendor
        self._reasoning_field = reasoning_field
        self._log = logger or log
        self.reasoning_chars = 0

    def feed(self, frame: Any) -> Delta:
        if isinstance(frame, SSEEvent):
            frame = frame.payload

        error = field_value(frame, "error")
        if error:
            message = field_value(error, "message") or str(error)
            raise StreamFatalError(f"{self._vendor} stream error: {message}")

        choices = field_value(frame, "choices") or []
        usage = field_value(frame, "usage")
        if usage is not None:
            counts = chat_usage_counts(usage)
            if choices:
                self._tracker.observe(**counts)
            else:
                self._tracker.finalize(**counts)

        if not choices:
            return _NOTHING

        delta = field_value(choices[0], "delta")
        if delta is None:
            return _NOTHING

        if self._reasoning_field:
            reasoning = field_value(delta, self._reasoning_field)
            if isinstance(reasoning, str) and reasoning:
                self.reasoning_chars += len(reasoning)

        content = field_value(delta, "content")
        if isinstance(content, str) and content:
            return Delta(text=content)
        return _NOTHING


class MessagesEventNormalizer:
    """Normalizer for Claude Messages API named events."""

    def __init__(
        self,
        tracker: UsageTracker,
        *,
        vendor: str = "claude",
        logger: logging.Logger | None = None,
    ) -> None:
        self._tracker = tracker
        self._vendor = vendor
        self._log = logger or log
        self.reasoning_chars = 0

    def feed(self, frame: SSEEvent) -> Delta:
        payload = frame.payload
        kind = payload.get("type")
        if frame.event and kind and frame.event != kind:
            self._log.warning(
                "[%s] Event header %r does not match payload type %r",
                self._vendor,
                frame.event,
                kind,
            )
        kind = kind or frame.event

        if kind == "message_start":
            message = payload.get("message") or {}
            self._observe(message.get("usage"))
            return _NOTHING

        if kind == "content_block_start":
            block = payload.get("content_block") or {}
            if block.get("type") == "text" and block.get("text"):
                return Delta(text=block["text"])
            if block.get("type") == "tool_use":
                self._log.debug(
                    "[%s] Ignoring streamed tool_use block %r",
                    self._vendor,
                    block.get("name"),
                )
            return _NOTHING

        if kind == "content_block_delta":
            delta = payload.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                text = delta.get("text") or ""
                return Delta(text=text) if text else _NOTHING
            if delta_type == "thinking_delta":
                self.reasoning_chars += len(delta.get("thinking") or "")
            return _NOTHING

        if kind == "message_delta":
            self._observe(payload.get("usage"))
            return _NOTHING

        if kind == "message_stop":
            return Delta(terminal=True)

        if kind == "error":
            error = payload.get("error") or {}
            raise StreamFatalError(
                f"{self._vendor} stream error: "
                f"{error.get('type', 'error')}: {error.get('message', 'unknown')}"
            )

        # ping, content_block_stop, and future event types
        return _NOTHING

    def _observe(self, usage: Any) -> None:
        if usage:
            self._tracker.observe(**messages_usage_counts(usage))

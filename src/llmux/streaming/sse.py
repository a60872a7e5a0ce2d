"""Line-oriented server-sent events decoding.

Each ``data:`` line is one frame. An ``event:`` line names the frame that
follows it. Blank lines, ``:`` comments, and other fields (``id:``,
``retry:``) carry no state and are skipped. The vendor sentinel ends the
stream; end of input without a sentinel is an equally clean end.

Read errors raised by the underlying line iterator propagate unchanged so the
caller can treat them as fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import TYPE_CHECKING, Any

from llmux.errors import StreamDecodeError

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

log = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    """One ``data:`` payload and the event name that preceded it."""

    data: str
    event: str | None = None


@dataclass(frozen=True)
class SSEEvent:
    """A frame whose payload decoded as a JSON object."""

    payload: dict[str, Any]
    event: str | None = None


def _field(line: str, name: str) -> str | None:
    prefix = f"{name}:"
    if not line.startswith(prefix):
        return None
    value = line[len(prefix) :]
    return value[1:] if value.startswith(" ") else value


async def iter_sse_frames(
    lines: AsyncIterable[str],
    *,
    sentinel: str | None = DONE_SENTINEL,
) -> AsyncIterator[SSEFrame]:
    """Yield `SSEFrame` values from raw SSE *lines* until sentinel or EOF."""
    event: str | None = None
    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip() or line.startswith(":"):
            continue

        name = _field(line, "event")
        if name is not None:
            event = name.strip() or None
            continue

        data = _field(line, "data")
        if data is None:
            continue

        if sentinel is not None and data.strip() == sentinel:
            return
        yield SSEFrame(data=data, event=event)
        event = None


def decode_frame(frame: SSEFrame) -> dict[str, Any]:
    """Return the JSON object carried by *frame*.

    Raises:
        StreamDecodeError: If the payload is not a JSON object.
    """
    try:
        payload = json.loads(frame.data)
    except ValueError as exc:
        raise StreamDecodeError(f"invalid JSON: {exc}", frame=frame.data) from exc
    if not isinstance(payload, dict):
        raise StreamDecodeError("frame payload is not a JSON object", frame=frame.data)
    return payload


async def iter_sse_events(
    frames: AsyncIterable[SSEFrame],
    *,
    vendor: str,
    logger: logging.Logger | None = None,
) -> AsyncIterator[SSEEvent]:
    """Decode each frame's JSON payload, skipping frames that do not decode."""
    logger = logger or log
    async for frame in frames:
        try:
            payload = decode_frame(frame)
        except StreamDecodeError as exc:
            logger.warning(
                "[%s] Skipping undecodable stream frame: %s (%.120s)",
                vendor,
                exc,
                frame.data,
            )
            continue
        yield SSEEvent(payload=payload, event=frame.event)

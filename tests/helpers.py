"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: wire-level fakes go through
``httpx.MockTransport`` so adapters run their real request and stream code.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import json
from typing import Any

import httpx

from llmux.streaming.channel import ChunkChannel
from llmux.types import StreamChunk

BASE_URL = "https://llm.test/v1"


def sse_data(*payloads: dict[str, Any] | str, done: bool = True) -> bytes:
    """Encode OpenAI-style ``data:`` frames, optionally ending with ``[DONE]``."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_events(*events: tuple[str, dict[str, Any]]) -> bytes:
    """Encode named ``event:``/``data:`` frames (Claude Messages style)."""
    return "".join(
        f"event: {name}\ndata: {json.dumps(payload)}\n\n" for name, payload in events
    ).encode("utf-8")


def chat_chunk(
    content: str | None = None,
    *,
    reasoning: str | None = None,
    reasoning_field: str = "reasoning_content",
    usage: dict[str, Any] | None = None,
    finish_reason: str | None = None,
    choices: bool = True,
) -> dict[str, Any]:
    """Build one ``chat.completion.chunk`` payload."""
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta[reasoning_field] = reasoning
    chunk: dict[str, Any] = {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "created": 0,
        "model": "test-model",
        "choices": (
            [{"index": 0, "delta": delta, "finish_reason": finish_reason}]
            if choices
            else []
        ),
    }
    if usage is not None:
        chunk["usage"] = usage
    return chunk


def chat_completion(
    content: str | None = "ok",
    *,
    tool_calls: list[dict[str, Any]] | None = None,
    usage: dict[str, Any] | None = None,
    extra_message: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build one non-streaming ``chat.completion`` payload."""
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    message.update(extra_message or {})
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
        "usage": usage
        or {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


class FailingStream(httpx.AsyncByteStream):
    """Response body that yields *chunks* and then fails the read."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        raise httpx.ReadError("connection reset by peer")


@dataclass
class Recorder:
    """MockTransport handler that records requests and replays responses."""

    responses: list[httpx.Response] = field(default_factory=list)
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        return self.responses.pop(0)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def client(self, **kwargs: Any) -> httpx.AsyncClient:
        kwargs.setdefault("base_url", BASE_URL)
        return httpx.AsyncClient(transport=httpx.MockTransport(self), **kwargs)


def json_response(payload: dict[str, Any], status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def sse_response(body: bytes) -> httpx.Response:
    return httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=body
    )


async def drain(channel: ChunkChannel) -> list[StreamChunk]:
    """Collect every chunk until the channel closes."""
    return [chunk async for chunk in channel]


def frames_from(
    items: list[Any], *, on_exit: Callable[[], None] | None = None
) -> Callable[[], Any]:
    """Return an ``open_frames`` factory yielding *items* (exceptions are raised)."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[AsyncIterator[Any]]:
        async def _iter() -> AsyncIterator[Any]:
            for item in items:
                if isinstance(item, BaseException):
                    raise item
                yield item

        try:
            yield _iter()
        finally:
            if on_exit is not None:
                on_exit()

    return _open

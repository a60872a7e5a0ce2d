"""Claude Messages API provider over raw HTTP.

Streaming uses named SSE events (``message_start``, ``content_block_delta``,
``message_stop``, ...), so the adapter reads the event stream directly with
httpx instead of through an SDK.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from llmux._http import build_client, raise_for_vendor_status
from llmux.options import GenerationOptions
from llmux.prompts import PromptPolicy, PromptSegment, system_segments
from llmux.providers._errors import wrap_vendor_error
from llmux.providers.base import VendorCapabilities
from llmux.providers.engine import BaseProvider
from llmux.providers.models import ParsedResponse, WireRequest
from llmux.request import put_sampling, resolve_features, translate_tools
from llmux.streaming.normalize import MessagesEventNormalizer
from llmux.streaming.sse import iter_sse_events, iter_sse_frames
from llmux.types import ToolInvocation
from llmux.usage import messages_usage_counts, usage_from_counts

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from llmux.config import VendorConfig
    from llmux.options import Tool
    from llmux.streaming.normalize import DeltaNormalizer
    from llmux.usage import UsageTracker

API_VERSION = "2023-06-01"
PROMPT_CACHING_BETA = "prompt-caching-2024-07-31"
DEFAULT_MAX_TOKENS = 4096

CAPABILITIES = VendorCapabilities(
    vendor="claude",
    tools=True,
    structured_outputs=False,
    streaming_tools=False,
    frame_format="sse_named_events",
    reasoning_field="thinking",
    tool_failure="fail",
    caching=True,
    prompt=PromptPolicy(
        blocks_replace_system=False,
        language_first=False,
        schema_fence="fenced",
        inject_schema=True,
    ),
)


class ClaudeProvider(BaseProvider):
    """Anthropic Claude provider (Messages API)."""

    def __init__(
        self,
        config: VendorConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize from *config*, or around an already-authenticated *client*."""
        super().__init__(config, CAPABILITIES, logger=logger)
        self._owns_client = client is None
        self._client = client or build_client(
            config,
            headers={
                "x-api-key": config.api_key or "",
                "anthropic-version": API_VERSION,
                "content-type": "application/json",
            },
        )

    def default_options(self) -> GenerationOptions:
        """Claude requires ``max_tokens``; sampling defaults follow the vendor guide."""
        return GenerationOptions(temperature=0.7, max_tokens=DEFAULT_MAX_TOKENS)

    def build_request(
        self, prompt: str, options: GenerationOptions, *, stream: bool
    ) -> WireRequest:
        """Build a ``/messages`` request."""
        features = resolve_features(
            options, self.capabilities, self.model, stream=stream, logger=self._log
        )

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
        }
        put_sampling(payload, options, top_k=True)

        segments = system_segments(
            options, self.capabilities.prompt, include_schema=features.prompt_schema
        )
        if options.use_cache and segments and not segments[-1].cacheable:
            segments[-1] = PromptSegment(segments[-1].text, cacheable=True)
        system = [_system_block(segment) for segment in segments]
        if system:
            payload["system"] = system

        if features.tools:
            tools = translate_tools(
                features.tools, self.capabilities, _render_tool, logger=self._log
            )
            if tools:
                payload["tools"] = tools

        if stream:
            payload["stream"] = True

        headers: dict[str, str] = {}
        if any("cache_control" in block for block in system):
            headers["anthropic-beta"] = PROMPT_CACHING_BETA
            self._log.info("[%s] Prompt caching enabled for this request", self.vendor)

        return WireRequest(
            endpoint="/messages", payload=payload, headers=headers, stream=stream
        )

    async def _send(self, request: WireRequest) -> Any:
        response = await self._client.post(
            request.endpoint, json=request.payload, headers=request.headers
        )
        await raise_for_vendor_status(response, vendor=self.vendor)
        return response.json()

    def parse_response(self, raw: Any) -> ParsedResponse:
        """Collect text blocks, tool_use blocks, thinking, and usage."""
        parsed = ParsedResponse(
            usage=usage_from_counts(messages_usage_counts(raw.get("usage"))),
            finish_reason=raw.get("stop_reason"),
        )
        thinking: list[str] = []
        for block in raw.get("content") or []:
            kind = block.get("type")
            if kind == "text":
                parsed.text_segments.append(block.get("text") or "")
            elif kind == "tool_use":
                parsed.tool_calls.append(
                    ToolInvocation(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        arguments=json.dumps(
                            block.get("input") or {}, ensure_ascii=False
                        ),
                    )
                )
            elif kind == "thinking":
                thinking.append(block.get("thinking") or "")
        if any(thinking):
            parsed.reasoning = "\n\n".join(thinking).strip()
        return parsed

    @asynccontextmanager
    async def _open_frames(self, request: WireRequest) -> AsyncIterator[Any]:
        http_request = self._client.build_request(
            "POST", request.endpoint, json=request.payload, headers=request.headers
        )
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise wrap_vendor_error(e, vendor=self.vendor, phase="stream") from e
        try:
            await raise_for_vendor_status(response, vendor=self.vendor)
            events = iter_sse_events(
                iter_sse_frames(response.aiter_lines(), sentinel=None),
                vendor=self.vendor,
                logger=self._log,
            )
            try:
                yield events
            finally:
                await events.aclose()
        finally:
            await response.aclose()

    def new_normalizer(self, tracker: UsageTracker) -> DeltaNormalizer:
        """Return a named-event normalizer."""
        return MessagesEventNormalizer(tracker, vendor=self.vendor, logger=self._log)

    async def aclose(self) -> None:
        """Close the HTTP client when this provider created it."""
        if self._owns_client:
            await self._client.aclose()


def _system_block(segment: PromptSegment) -> dict[str, Any]:
    block: dict[str, Any] = {"type": "text", "text": segment.text}
    if segment.cacheable:
        block["cache_control"] = {"type": "ephemeral"}
    return block


def _render_tool(tool: Tool, schema_map: dict[str, Any]) -> dict[str, Any]:
    """Claude tool inputs are always object schemas."""
    input_schema: dict[str, Any] = {"type": "object"}
    input_schema.update({k: v for k, v in schema_map.items() if k != "type"})
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": input_schema,
    }

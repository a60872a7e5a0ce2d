"""Z.AI (GLM) chat completions provider over raw HTTP."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING, Any

import httpx

from llmux._http import build_client, raise_for_vendor_status
from llmux.options import GenerationOptions
from llmux.prompts import PromptPolicy, compose_system_prompt
from llmux.providers._errors import wrap_vendor_error
from llmux.providers.base import VendorCapabilities
from llmux.providers.engine import BaseProvider
from llmux.providers.models import ParsedResponse, WireRequest
from llmux.request import put_sampling, resolve_features
from llmux.streaming.sse import iter_sse_events, iter_sse_frames
from llmux.usage import chat_usage_counts, usage_from_counts

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from llmux.config import VendorConfig

#: Models that reason before answering; reasoning shares the max_tokens budget.
THINKING_MODELS = ("glm-4.7",)
THINKING_MIN_TOKENS = 16384

CAPABILITIES = VendorCapabilities(
    vendor="zai",
    tools=False,
    structured_outputs=False,
    frame_format="sse_data",
    reasoning_field="reasoning_content",
    prompt=PromptPolicy(
        blocks_replace_system=False,
        language_first=False,
        schema_fence="raw",
        inject_schema=True,
        strict_json_rules=True,
    ),
)


class ZaiProvider(BaseProvider):
    """Z.AI GLM provider (OpenAI-style chat completions, JSON mode, thinking)."""

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
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
        )

    def default_options(self) -> GenerationOptions:
        """Return Z.AI defaults."""
        return GenerationOptions(
            temperature=0.7,
            max_tokens=4096,
            system="You are a helpful assistant.",
        )

    @property
    def thinking(self) -> bool:
        """Whether the configured model runs in thinking mode."""
        return any(name in self.model for name in THINKING_MODELS)

    def build_request(
        self, prompt: str, options: GenerationOptions, *, stream: bool
    ) -> WireRequest:
        """Build a ``/chat/completions`` request."""
        features = resolve_features(
            options, self.capabilities, self.model, stream=stream, logger=self._log
        )

        messages: list[dict[str, str]] = []
        system = compose_system_prompt(
            options, self.capabilities.prompt, include_schema=features.prompt_schema
        )
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        put_sampling(payload, options)

        if features.prompt_schema or "json" in options.response_format.lower():
            payload["response_format"] = {"type": "json_object"}

        if self.thinking:
            payload["thinking"] = {"type": "enabled"}
            if payload.get("max_tokens", 0) < THINKING_MIN_TOKENS:
                payload["max_tokens"] = THINKING_MIN_TOKENS
            self._log.debug(
                "[%s] Thinking enabled, max_tokens=%d", self.vendor, payload["max_tokens"]
            )

        if stream:
            payload["stream"] = True

        return WireRequest(endpoint="/chat/completions", payload=payload, stream=stream)

    async def _send(self, request: WireRequest) -> Any:
        response = await self._client.post(request.endpoint, json=request.payload)
        await raise_for_vendor_status(response, vendor=self.vendor)
        return response.json()

    def parse_response(self, raw: Any) -> ParsedResponse:
        """Read ``choices[0].message``; reasoning is kept apart from content."""
        parsed = ParsedResponse(
            usage=usage_from_counts(chat_usage_counts(raw.get("usage") or {}))
        )
        choices = raw.get("choices") or []
        if not choices:
            return parsed

        choice = choices[0]
        message = choice.get("message") or {}
        parsed.finish_reason = choice.get("finish_reason")
        content = message.get("content")
        if content:
            parsed.text_segments.append(content)
        parsed.reasoning = message.get("reasoning_content") or None
        return parsed

    @asynccontextmanager
    async def _open_frames(self, request: WireRequest) -> AsyncIterator[Any]:
        http_request = self._client.build_request(
            "POST", request.endpoint, json=request.payload
        )
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise wrap_vendor_error(e, vendor=self.vendor, phase="stream") from e
        try:
            await raise_for_vendor_status(response, vendor=self.vendor)
            events = iter_sse_events(
                iter_sse_frames(response.aiter_lines()),
                vendor=self.vendor,
                logger=self._log,
            )
            try:
                yield events
            finally:
                await events.aclose()
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client when this provider created it."""
        if self._owns_client:
            await self._client.aclose()

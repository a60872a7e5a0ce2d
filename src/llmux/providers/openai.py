"""OpenAI chat completions provider and OpenAI-compatible vendor profiles.

DeepSeek, Groq, Cerebras, Inception, 302.AI and OpenRouter speak the same
chat-completions protocol; they differ only in capabilities, prompt policy
and default options, captured per vendor in `PROFILES`.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any

from llmux.errors import ConfigurationError, LlmuxError
from llmux.options import GenerationOptions
from llmux.prompts import (
    PromptPolicy,
    compose_system_prompt,
    language_reminder,
    needs_language_directive,
)
from llmux.providers._errors import wrap_vendor_error
from llmux.providers._utils import to_strict_schema
from llmux.providers.base import VendorCapabilities
from llmux.providers.engine import BaseProvider
from llmux.providers.models import ParsedResponse, WireRequest
from llmux.request import put_sampling, resolve_features, translate_tools
from llmux.schema import to_wire_map
from llmux.streaming.sse import iter_sse_events, iter_sse_frames
from llmux.types import ToolInvocation
from llmux.usage import chat_usage_counts, field_value, usage_from_counts

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from llmux.config import VendorConfig
    from llmux.options import Tool

STRUCTURED_OUTPUT_NAME = "structured_output"
HELPFUL_ASSISTANT = "You are a helpful assistant."

# OpenAI and OpenRouter replace the system string with blocks and lead with
# the language directive; the other compatible vendors append.
_NATIVE_POLICY = PromptPolicy(
    blocks_replace_system=True,
    language_first=True,
    inject_schema=False,
)
_PROMPTED_POLICY = PromptPolicy(
    blocks_replace_system=False,
    language_first=False,
    schema_fence="fenced",
    inject_schema=True,
)
_REMINDER_POLICY = PromptPolicy(
    blocks_replace_system=False,
    language_first=False,
    schema_fence="fenced",
    inject_schema=True,
    language_reminder=True,
)


@dataclass(frozen=True)
class CompatibleProfile:
    """What distinguishes one chat-completions vendor from another."""

    capabilities: VendorCapabilities
    defaults: GenerationOptions = field(default_factory=GenerationOptions)
    #: Ask for a trailing usage chunk (``stream_options.include_usage``).
    stream_usage: bool = False


PROFILES: dict[str, CompatibleProfile] = {
    "openai": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="openai",
            tools=True,
            structured_outputs=True,
            tool_failure="fail",
            prompt=_NATIVE_POLICY,
        ),
        defaults=GenerationOptions(temperature=0.7, max_tokens=2048),
        stream_usage=True,
    ),
    "openrouter": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="openrouter",
            tools=True,
            structured_outputs=True,
            reasoning_field="reasoning",
            tool_models=(
                "openai/gpt-4-turbo-preview",
                "openai/gpt-4-turbo",
                "openai/gpt-4",
                "openai/gpt-3.5-turbo",
                "anthropic/claude-3-opus",
                "anthropic/claude-3-sonnet",
                "anthropic/claude-3-haiku",
            ),
            tool_failure="skip",
            prompt=_NATIVE_POLICY,
        ),
        defaults=GenerationOptions(temperature=0.7, max_tokens=2048),
    ),
    "deepseek": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="deepseek",
            reasoning_field="reasoning_content",
            prompt=_PROMPTED_POLICY,
        ),
        defaults=GenerationOptions(
            temperature=0.7, max_tokens=4096, system=HELPFUL_ASSISTANT
        ),
    ),
    "groq": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="groq",
            reasoning_field="reasoning",
            prompt=_REMINDER_POLICY,
        ),
        defaults=GenerationOptions(
            temperature=0.7, max_tokens=4096, system=HELPFUL_ASSISTANT
        ),
    ),
    "cerebras": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="cerebras",
            reasoning_field="reasoning",
            prompt=_PROMPTED_POLICY,
        ),
        defaults=GenerationOptions(
            temperature=0.6, max_tokens=40000, top_p=0.95, system=HELPFUL_ASSISTANT
        ),
    ),
    "inception": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="inception",
            prompt=_REMINDER_POLICY,
        ),
        defaults=GenerationOptions(temperature=0.7, max_tokens=4096),
    ),
    "ai302": CompatibleProfile(
        capabilities=VendorCapabilities(
            vendor="ai302",
            reasoning_field="reasoning_content",
            prompt=_PROMPTED_POLICY,
        ),
        defaults=GenerationOptions(
            temperature=0.7, max_tokens=4096, system=HELPFUL_ASSISTANT
        ),
    ),
}


class OpenAIProvider(BaseProvider):
    """Chat completions provider for OpenAI and OpenAI-compatible vendors."""

    def __init__(
        self,
        config: VendorConfig,
        *,
        client: Any = None,
        http_client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize from *config*.

        Args:
            config: Vendor connection settings; ``config.vendor`` selects the profile.
            client: An already-authenticated ``AsyncOpenAI`` client.
            http_client: Transport for a client built here (tests inject a
                mock transport through this).
            logger: Logger for vendor-prefixed diagnostics.
        """
        profile = PROFILES.get(config.vendor)
        if profile is None:
            raise ConfigurationError(
                f"{config.vendor!r} is not an OpenAI-compatible vendor",
                hint=f"Supported here: {', '.join(PROFILES)}",
            )
        super().__init__(config, profile.capabilities, logger=logger)
        self._profile = profile
        self._client: Any = client
        self._owns_client = client is None
        self._http_client = http_client

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ConfigurationError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    def default_options(self) -> GenerationOptions:
        """Return the vendor profile defaults."""
        return self._profile.defaults

    def build_request(
        self, prompt: str, options: GenerationOptions, *, stream: bool
    ) -> WireRequest:
        """Build a ``chat.completions.create`` call."""
        capabilities = self.capabilities
        features = resolve_features(
            options, capabilities, self.model, stream=stream, logger=self._log
        )

        messages: list[dict[str, str]] = []
        system = compose_system_prompt(
            options, capabilities.prompt, include_schema=features.prompt_schema
        )
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        if capabilities.prompt.language_reminder and needs_language_directive(
            options.language
        ):
            messages.append(
                {"role": "user", "content": language_reminder(options.language)}
            )

        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        put_sampling(payload, options)
        if options.top_k is not None:
            self._log.debug("[%s] top_k is not supported; omitted", self.vendor)

        if features.tools:
            tools = translate_tools(
                features.tools, capabilities, _render_tool, logger=self._log
            )
            if tools:
                payload["tools"] = tools
        elif features.native_schema is not None:
            schema = features.native_schema
            json_schema: dict[str, Any] = {
                "name": STRUCTURED_OUTPUT_NAME,
                "schema": to_strict_schema(to_wire_map(schema)),
                "strict": True,
            }
            if schema.description:
                json_schema["description"] = schema.description
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": json_schema,
            }

        if stream:
            payload["stream"] = True
            if self._profile.stream_usage:
                payload["stream_options"] = {"include_usage": True}

        return WireRequest(endpoint="chat.completions", payload=payload, stream=stream)

    async def _send(self, request: WireRequest) -> Any:
        client = self._get_client()
        return await client.chat.completions.create(**request.payload)

    def parse_response(self, raw: Any) -> ParsedResponse:
        """Read the first choice of a ``ChatCompletion``."""
        parsed = ParsedResponse(
            usage=usage_from_counts(chat_usage_counts(getattr(raw, "usage", None)))
        )
        choices = getattr(raw, "choices", None) or []
        if not choices:
            return parsed

        choice = choices[0]
        message = choice.message
        parsed.finish_reason = choice.finish_reason
        if message.content:
            parsed.text_segments.append(message.content)
        for call in message.tool_calls or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            parsed.tool_calls.append(
                ToolInvocation(
                    id=call.id,
                    name=function.name,
                    arguments=function.arguments or "{}",
                )
            )
        reasoning_field = self.capabilities.reasoning_field
        if reasoning_field:
            reasoning = field_value(message, reasoning_field)
            if isinstance(reasoning, str) and reasoning:
                parsed.reasoning = reasoning
        return parsed

    @asynccontextmanager
    async def _open_frames(self, request: WireRequest) -> AsyncIterator[Any]:
        client = self._get_client()
        async with AsyncExitStack() as stack:
            try:
                response = await stack.enter_async_context(
                    client.chat.completions.with_streaming_response.create(
                        **request.payload
                    )
                )
            except asyncio.CancelledError:
                raise
            except LlmuxError:
                raise
            except Exception as e:
                raise wrap_vendor_error(e, vendor=self.vendor, phase="stream") from e
            # Raw lines go through the shared SSE decoder so a malformed frame
            # is skipped like on every other vendor.
            events = iter_sse_events(
                iter_sse_frames(response.iter_lines()),
                vendor=self.vendor,
                logger=self._log,
            )
            try:
                yield events
            finally:
                await events.aclose()

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None or not self._owns_client:
            return
        self._client = None
        await client.close()


def _render_tool(tool: Tool, schema_map: dict[str, Any]) -> dict[str, Any]:
    function: dict[str, Any] = {"name": tool.name, "parameters": schema_map}
    if tool.description:
        function["description"] = tool.description
    return {"type": "function", "function": function}

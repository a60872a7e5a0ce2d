"""Shared request-building helpers used by every vendor adapter.

Vendors differ in wire shape but agree on the rules applied here:

- sampling fields are sent only when set (never as zero sentinels);
- tools take precedence over structured output, so a request never carries
  a native tool list and a native schema directive together;
- a feature the vendor or model cannot honor is dropped with a warning
  rather than failing the call.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from llmux.errors import RequestBuildError
from llmux.schema import to_wire_map

if TYPE_CHECKING:
    from collections.abc import Callable

    from llmux.options import GenerationOptions, Tool
    from llmux.providers.base import VendorCapabilities
    from llmux.schema import Schema

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestFeatures:
    """Which optional features survive capability gating for one request."""

    #: Tools to send natively (empty when none apply).
    tools: tuple[Tool, ...] = ()
    #: Schema to send as a native structured-output directive.
    native_schema: Schema | None = None
    #: Whether the schema instruction belongs in the system prompt.
    prompt_schema: bool = False


def resolve_features(
    options: GenerationOptions,
    capabilities: VendorCapabilities,
    model: str,
    *,
    stream: bool,
    logger: logging.Logger | None = None,
) -> RequestFeatures:
    """Apply precedence and capability gating to the optional features.

    Supported tools win over the response schema. Tools the model cannot
    use are dropped, and the schema is then applied as if none were given.
    """
    logger = logger or log
    vendor = capabilities.vendor

    if options.has_tools:
        if capabilities.supports_tools(model, stream=stream):
            return RequestFeatures(tools=options.tools)
        mode = "streaming" if stream else "generation"
        logger.warning(
            "[%s] Model %r does not support tool calling in %s mode; ignoring tools",
            vendor,
            model,
            mode,
        )

    schema = options.response_schema
    if schema is None:
        return RequestFeatures()

    if capabilities.structured_outputs:
        if capabilities.supports_structured_output(model, stream=stream):
            logger.info("[%s] Using native structured output", vendor)
            return RequestFeatures(native_schema=schema)
        logger.warning(
            "[%s] Model %r does not support structured output here; ignoring response schema",
            vendor,
            model,
        )
        return RequestFeatures()

    return RequestFeatures(prompt_schema=capabilities.prompt.inject_schema)


def translate_tools(
    tools: tuple[Tool, ...],
    capabilities: VendorCapabilities,
    render: Callable[[Tool, dict[str, Any]], dict[str, Any]],
    *,
    logger: logging.Logger | None = None,
) -> list[dict[str, Any]]:
    """Convert *tools* to wire definitions via the vendor's *render* callback.

    A tool with no input schema is always skipped. A schema that fails to
    convert is skipped or fatal according to ``capabilities.tool_failure``.

    Raises:
        RequestBuildError: Under the ``fail`` policy, for the first tool whose
            schema cannot be converted.
    """
    logger = logger or log
    vendor = capabilities.vendor
    rendered: list[dict[str, Any]] = []

    for tool in tools:
        if tool.input_schema is None:
            logger.warning("[%s] Tool %r missing schema, skipping", vendor, tool.name)
            continue
        try:
            schema_map = to_wire_map(tool.input_schema)
        except RequestBuildError as exc:
            if capabilities.tool_failure == "fail":
                raise RequestBuildError(
                    f"Failed to convert schema for tool {tool.name!r}: {exc}",
                    hint="Fix the tool's input_schema or remove the tool.",
                ) from exc
            logger.warning(
                "[%s] Failed to convert schema for tool %r, skipping: %s",
                vendor,
                tool.name,
                exc,
            )
            continue
        rendered.append(render(tool, schema_map))

    return rendered


def put_sampling(
    payload: dict[str, Any],
    options: GenerationOptions,
    *,
    max_tokens_key: str = "max_tokens",
    top_k: bool = False,
) -> None:
    """Copy the sampling fields that are set into *payload*.

    ``top_k`` is forwarded only for vendors that accept it.
    """
    if options.temperature is not None:
        payload["temperature"] = options.temperature
    if options.top_p is not None:
        payload["top_p"] = options.top_p
    if top_k and options.top_k is not None:
        payload["top_k"] = options.top_k
    if options.max_tokens is not None:
        payload[max_tokens_key] = options.max_tokens

"""llmux: one generation and streaming contract over many LLM vendor APIs.

Public API:
    - ClaudeProvider, OpenAIProvider, ZaiProvider: vendor adapters
    - VendorConfig: connection settings resolved from the environment
    - GenerationOptions and the ``with_*`` overrides
    - ChunkChannel / StreamChunk: streaming delivery
"""

from __future__ import annotations

import logging

from llmux.config import VendorConfig
from llmux.errors import (
    ChannelClosedError,
    ConfigurationError,
    EmptyContentError,
    JSONExtractionError,
    LlmuxError,
    RequestBuildError,
    StreamCancelledError,
    StreamDecodeError,
    StreamFatalError,
    TransportError,
    VendorAPIError,
)
from llmux.extraction import extract_json, extract_json_strict, loads_json
from llmux.options import (
    GenerationOptions,
    OptionOverride,
    SystemBlock,
    Tool,
    with_cache,
    with_language,
    with_max_tokens,
    with_response_format,
    with_response_schema,
    with_system,
    with_system_blocks,
    with_temperature,
    with_tools,
    with_top_k,
    with_top_p,
)
from llmux.providers import (
    ClaudeProvider,
    OpenAIProvider,
    Provider,
    TextStream,
    ZaiProvider,
)
from llmux.schema import Schema
from llmux.streaming import ChunkChannel
from llmux.types import GenerationResult, StreamChunk, ToolInvocation
from llmux.usage import UsageInfo

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("llmux")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("llmux").addHandler(logging.NullHandler())

__all__ = [
    "ChannelClosedError",
    "ChunkChannel",
    "ClaudeProvider",
    "ConfigurationError",
    "EmptyContentError",
    "GenerationOptions",
    "GenerationResult",
    "JSONExtractionError",
    "LlmuxError",
    "OpenAIProvider",
    "OptionOverride",
    "Provider",
    "RequestBuildError",
    "Schema",
    "StreamCancelledError",
    "StreamChunk",
    "StreamDecodeError",
    "StreamFatalError",
    "SystemBlock",
    "TextStream",
    "Tool",
    "ToolInvocation",
    "TransportError",
    "UsageInfo",
    "VendorAPIError",
    "VendorConfig",
    "ZaiProvider",
    "extract_json",
    "extract_json_strict",
    "loads_json",
    "with_cache",
    "with_language",
    "with_max_tokens",
    "with_response_format",
    "with_response_schema",
    "with_system",
    "with_system_blocks",
    "with_temperature",
    "with_tools",
    "with_top_k",
    "with_top_p",
]

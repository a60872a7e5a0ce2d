"""Provider protocol and the vendor capability descriptor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

from llmux.prompts import PromptPolicy

if TYPE_CHECKING:
    import asyncio

    from llmux.options import GenerationOptions, OptionOverride
    from llmux.streaming.channel import ChunkChannel
    from llmux.types import GenerationResult
    from llmux.usage import UsageInfo

FrameFormat = Literal["sse_named_events", "sse_data"]
ToolFailurePolicy = Literal["skip", "fail"]


@dataclass(frozen=True)
class VendorCapabilities:
    """Feature flags and wire quirks that parameterize the shared engine."""

    vendor: str
    #: Native tool calling.
    tools: bool = False
    #: Native schema-constrained output.
    structured_outputs: bool = False
    streaming_tools: bool = False
    streaming_structured_outputs: bool = False
    frame_format: FrameFormat = "sse_data"
    #: Name of the reasoning sub-field in stream deltas; never surfaced.
    reasoning_field: str | None = None
    #: Model-name substrings allowed to use tools; empty means every model.
    tool_models: tuple[str, ...] = ()
    #: Model-name substrings allowed to use structured output; empty means every model.
    structured_output_models: tuple[str, ...] = ()
    #: ``skip`` drops a tool whose schema fails to convert; ``fail`` aborts the build.
    tool_failure: ToolFailurePolicy = "skip"
    #: Prompt caching via cacheable system blocks.
    caching: bool = False
    prompt: PromptPolicy = field(default_factory=PromptPolicy)

    def supports_tools(self, model: str, *, stream: bool) -> bool:
        """Whether *model* may carry a native tool list."""
        if not self.tools or (stream and not self.streaming_tools):
            return False
        return _model_allowed(model, self.tool_models)

    def supports_structured_output(self, model: str, *, stream: bool) -> bool:
        """Whether *model* may carry a native structured-output directive."""
        if not self.structured_outputs or (
            stream and not self.streaming_structured_outputs
        ):
            return False
        return _model_allowed(model, self.structured_output_models)


def _model_allowed(model: str, allowed: tuple[str, ...]) -> bool:
    if not allowed:
        return True
    return any(name in model for name in allowed)


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: generate, stream, close."""

    @property
    def model(self) -> str:
        """Vendor model identifier used for every request."""
        ...

    @property
    def capabilities(self) -> VendorCapabilities:
        """Feature capabilities used to gate request features."""
        ...

    async def generate(
        self,
        prompt: str,
        *overrides: OptionOverride,
        options: GenerationOptions | None = None,
    ) -> GenerationResult:
        """Generate a complete response."""
        ...

    async def stream(
        self,
        prompt: str,
        sink: ChunkChannel,
        *overrides: OptionOverride,
        options: GenerationOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> UsageInfo:
        """Stream chunks into *sink* and return the final usage."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...

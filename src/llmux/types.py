"""Canonical result types returned to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from llmux.usage import UsageInfo

ChunkKind = Literal["text", "final", "error"]


@dataclass(frozen=True)
class StreamChunk:
    """One item of a streaming response: a fragment, the finality marker, or an error.

    A chunk is exactly one of the three. A successful stream ends with one
    finality marker; a failed stream ends with one error chunk and no marker.
    """

    text: str = ""
    is_final: bool = False
    error: BaseException | None = None

    def __post_init__(self) -> None:
        """Reject chunks that mix kinds."""
        kinds = sum((bool(self.text), self.is_final, self.error is not None))
        if kinds != 1:
            raise ValueError(
                "StreamChunk must carry exactly one of text, is_final, or error"
            )

    @classmethod
    def fragment(cls, text: str) -> StreamChunk:
        """Return a text fragment chunk."""
        return cls(text=text)

    @classmethod
    def final(cls) -> StreamChunk:
        """Return the finality marker."""
        return cls(is_final=True)

    @classmethod
    def failure(cls, error: BaseException) -> StreamChunk:
        """Return a terminal error chunk."""
        return cls(error=error)

    @property
    def kind(self) -> ChunkKind:
        """Which of the three variants this chunk is."""
        if self.error is not None:
            return "error"
        if self.is_final:
            return "final"
        return "text"


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call requested by the model."""

    id: str
    name: str
    #: JSON-encoded argument object, exactly as the vendor sent it.
    arguments: str


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a non-streaming call: text or a tool invocation, plus usage."""

    text: str = ""
    tool_call: ToolInvocation | None = None
    usage: UsageInfo = field(default_factory=UsageInfo)

    @property
    def is_tool_call(self) -> bool:
        """Whether the model invoked a tool instead of answering."""
        return self.tool_call is not None

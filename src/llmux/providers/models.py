"""Domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from llmux.types import ToolInvocation
from llmux.usage import UsageInfo


@dataclass(frozen=True)
class WireRequest:
    """A fully built vendor request, ready for the transport."""

    #: Path relative to the vendor base URL (or SDK resource name).
    endpoint: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    stream: bool = False


@dataclass
class ParsedResponse:
    """Vendor response reduced to the parts the assembler needs."""

    #: Text-bearing content segments, in response order.
    text_segments: list[str] = field(default_factory=list)
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    usage: UsageInfo = field(default_factory=UsageInfo)
    reasoning: str | None = None
    finish_reason: str | None = None

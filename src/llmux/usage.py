"""Token usage accounting across stream frames.

Vendors report usage in different shapes and at different times: some in the
first frame, some in a trailing frame, some split across both. `UsageTracker`
folds those reports into one `UsageInfo` per call:

- last writer wins per field: a later positive value overwrites, while an
  absent or zero value keeps what was already recorded (never resets);
- an authoritative terminal report (`UsageTracker.finalize`) fixes every
  field it carries and freezes the record against later partial frames.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

_FIELDS = (
    "input_tokens",
    "output_tokens",
    "cache_create_tokens",
    "cache_hit_tokens",
    "cache_miss_tokens",
)


@dataclass(frozen=True)
class UsageInfo:
    """Canonical token usage for one call. Unreported fields are 0."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_create_tokens: int = 0
    cache_hit_tokens: int = 0
    cache_miss_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Input plus output tokens."""
        return self.input_tokens + self.output_tokens

    def as_dict(self) -> dict[str, int]:
        """Return the usage as a plain mapping, including ``total_tokens``."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["total_tokens"] = self.total_tokens
        return data


class UsageTracker:
    """Accumulates usage reports for a single call.

    One tracker per call; trackers are never shared between concurrent calls.
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = dict.fromkeys(_FIELDS, 0)
        self._reported = False
        self._final = False

    @property
    def reported(self) -> bool:
        """Whether any frame carried usage."""
        return self._reported

    @property
    def finalized(self) -> bool:
        """Whether an authoritative terminal report was recorded."""
        return self._final

    def observe(
        self,
        *,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        cache_create_tokens: int | None = None,
        cache_hit_tokens: int | None = None,
        cache_miss_tokens: int | None = None,
    ) -> None:
        """Record a partial report; positive values overwrite earlier ones."""
        if self._final:
            return
        report = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cache_create_tokens": cache_create_tokens,
            "cache_hit_tokens": cache_hit_tokens,
            "cache_miss_tokens": cache_miss_tokens,
        }
        for name, value in report.items():
            count = _as_count(value)
            if count is None:
                continue
            self._reported = True
            if count > 0:
                self._counts[name] = count

    def finalize(
        self,
        *,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        cache_create_tokens: int | None = None,
        cache_hit_tokens: int | None = None,
        cache_miss_tokens: int | None = None,
    ) -> None:
        """Record an authoritative report; its values are final, zeros included."""
        report = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cache_create_tokens": cache_create_tokens,
            "cache_hit_tokens": cache_hit_tokens,
            "cache_miss_tokens": cache_miss_tokens,
        }
        for name, value in report.items():
            count = _as_count(value)
            if count is not None:
                self._counts[name] = count
        self._reported = True
        self._final = True

    @property
    def usage(self) -> UsageInfo:
        """Snapshot of the accumulated usage."""
        return UsageInfo(**self._counts)


def _as_count(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        count = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None


# =============================================================================
# Vendor usage shapes
# =============================================================================


def field_value(node: Any, name: str) -> Any:
    """Read *name* from a mapping or an SDK object; *None* when absent."""
    if node is None:
        return None
    if isinstance(node, Mapping):
        return node.get(name)
    return getattr(node, name, None)


def chat_usage_counts(usage: Any) -> dict[str, int | None]:
    """Map an OpenAI-style ``usage`` block to tracker keyword arguments.

    Covers ``prompt_tokens_details.cached_tokens`` and the DeepSeek
    ``prompt_cache_hit_tokens``/``prompt_cache_miss_tokens`` fields.
    """
    details = field_value(usage, "prompt_tokens_details")
    cache_hit = field_value(usage, "prompt_cache_hit_tokens")
    if cache_hit is None:
        cache_hit = field_value(details, "cached_tokens")
    return {
        "input_tokens": field_value(usage, "prompt_tokens"),
        "output_tokens": field_value(usage, "completion_tokens"),
        "cache_hit_tokens": cache_hit,
        "cache_miss_tokens": field_value(usage, "prompt_cache_miss_tokens"),
    }


def messages_usage_counts(usage: Any) -> dict[str, int | None]:
    """Map a Claude Messages ``usage`` block to tracker keyword arguments."""
    return {
        "input_tokens": field_value(usage, "input_tokens"),
        "output_tokens": field_value(usage, "output_tokens"),
        "cache_create_tokens": field_value(usage, "cache_creation_input_tokens"),
        "cache_hit_tokens": field_value(usage, "cache_read_input_tokens"),
    }


def usage_from_counts(counts: dict[str, int | None]) -> UsageInfo:
    """Build a `UsageInfo` from one complete (non-streaming) report."""
    tracker = UsageTracker()
    tracker.finalize(**counts)
    return tracker.usage

"""Vendor-agnostic generation options.

`GenerationOptions` is immutable once built. It is assembled by applying an
ordered list of `OptionOverride` records on top of a defaults value: a later
override replaces the earlier value of the same field outright (tool lists and
system blocks are never merged).

Example:
    options = GenerationOptions.build(
        with_temperature(0.2),
        with_language("ko"),
        with_response_schema(schema),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

from pydantic import BaseModel

from llmux.errors import ConfigurationError
from llmux.schema import Schema, schema_from_model

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class SystemBlock:
    """A segment of the system instruction, optionally marked for prompt caching."""

    text: str
    cacheable: bool = False


@dataclass(frozen=True)
class Tool:
    """A function the model may invoke.

    A tool without ``input_schema`` is skipped (with a warning) when the
    request is built rather than failing the call.
    """

    name: str
    description: str = ""
    input_schema: Schema | None = None


@dataclass(frozen=True)
class OptionOverride:
    """A single field-level override applied by `GenerationOptions.build`."""

    name: str
    value: Any


@dataclass(frozen=True)
class GenerationOptions:
    """Optional generation features shared by every vendor."""

    #: Sampling temperature; omitted from the wire request when *None*.
    temperature: float | None = None
    #: Hard limit on output tokens. Vendor-specific semantics.
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: float | None = None
    #: ISO-639-1 code; ``""`` and ``"en"`` emit no language directive.
    language: str = ""
    #: Free-text system instruction.
    system: str = ""
    system_blocks: tuple[SystemBlock, ...] = field(default_factory=tuple)
    #: Free-form format hint, used only when no schema is set.
    response_format: str = ""
    #: `Schema`, JSON Schema dict, or pydantic ``BaseModel`` subclass; always a
    #: `Schema` once constructed.
    response_schema: Schema | dict[str, Any] | type[BaseModel] | None = None
    #: Tools take precedence over ``response_schema`` when both are set.
    tools: tuple[Tool, ...] = field(default_factory=tuple)
    #: Ask vendors with prompt caching to cache the composed instruction.
    use_cache: bool = False

    def __post_init__(self) -> None:
        """Normalize collection fields and validate option shapes early."""
        object.__setattr__(self, "system_blocks", tuple(self.system_blocks or ()))
        object.__setattr__(self, "tools", tuple(self.tools or ()))
        object.__setattr__(
            self, "response_schema", _coerce_schema(self.response_schema)
        )

        for attr in ("temperature", "top_p", "top_k"):
            value = getattr(self, attr)
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, (int, float))
            ):
                raise ConfigurationError(
                    f"{attr} must be a number",
                    hint=f"Pass {attr}=0.7 or leave it unset.",
                )

        if self.max_tokens is not None and (
            isinstance(self.max_tokens, bool)
            or not isinstance(self.max_tokens, int)
            or self.max_tokens <= 0
        ):
            raise ConfigurationError(
                "max_tokens must be a positive integer",
                hint="Pass max_tokens=4096 or leave it unset.",
            )

        for attr in ("language", "system", "response_format"):
            if not isinstance(getattr(self, attr), str):
                raise ConfigurationError(f"{attr} must be a string")

        for block in self.system_blocks:
            if not isinstance(block, SystemBlock):
                raise ConfigurationError(
                    "system_blocks items must be SystemBlock values",
                    hint="Pass system_blocks=[SystemBlock('You are terse.', cacheable=True)].",
                )

        seen: set[str] = set()
        for tool in self.tools:
            if not isinstance(tool, Tool) or not tool.name:
                raise ConfigurationError(
                    "tools items must be Tool values with a name",
                    hint="Pass tools=[Tool(name='lookup', input_schema=...)].",
                )
            if tool.name in seen:
                raise ConfigurationError(
                    f"Duplicate tool name: {tool.name!r}",
                    hint="Tool names must be unique within a request.",
                )
            seen.add(tool.name)

    @classmethod
    def build(
        cls,
        *overrides: OptionOverride,
        defaults: GenerationOptions | None = None,
    ) -> GenerationOptions:
        """Apply *overrides* in order on top of *defaults*.

        Raises:
            ConfigurationError: For an override naming an unknown field.
        """
        base = defaults if defaults is not None else cls()
        values = {f.name: getattr(base, f.name) for f in fields(cls)}
        for override in overrides:
            if override.name not in values:
                known = ", ".join(sorted(values))
                raise ConfigurationError(
                    f"Unknown generation option: {override.name!r}",
                    hint=f"Known options: {known}.",
                )
            values[override.name] = override.value
        return cls(**values)

    def apply(self, *overrides: OptionOverride) -> GenerationOptions:
        """Return a copy with *overrides* applied on top of this value."""
        return GenerationOptions.build(*overrides, defaults=self)

    @property
    def has_tools(self) -> bool:
        """Whether at least one tool was supplied."""
        return bool(self.tools)

    @property
    def wants_structured_output(self) -> bool:
        """Schema-constrained output applies only when no tools are present."""
        return self.response_schema is not None and not self.tools


def _coerce_schema(value: Any) -> Schema | None:
    if value is None or isinstance(value, Schema):
        return value
    if isinstance(value, dict):
        return Schema.from_dict(value)
    if isinstance(value, type) and issubclass(value, BaseModel):
        return schema_from_model(value)
    raise ConfigurationError(
        "response_schema must be a Schema, JSON schema dict, or pydantic model class",
        hint="Pass a BaseModel subclass or llmux.schema.object_schema(...).",
    )


# =============================================================================
# Override constructors
# =============================================================================


def with_temperature(value: float) -> OptionOverride:
    """Override ``temperature``."""
    return OptionOverride("temperature", value)


def with_max_tokens(value: int) -> OptionOverride:
    """Override ``max_tokens``."""
    return OptionOverride("max_tokens", value)


def with_top_p(value: float) -> OptionOverride:
    """Override ``top_p``."""
    return OptionOverride("top_p", value)


def with_top_k(value: float) -> OptionOverride:
    """Override ``top_k``."""
    return OptionOverride("top_k", value)


def with_language(code: str) -> OptionOverride:
    """Override ``language``."""
    return OptionOverride("language", code)


def with_system(text: str) -> OptionOverride:
    """Override ``system``."""
    return OptionOverride("system", text)


def with_system_blocks(blocks: list[SystemBlock] | tuple[SystemBlock, ...]) -> OptionOverride:
    """Override ``system_blocks``."""
    return OptionOverride("system_blocks", tuple(blocks))


def with_response_format(value: str) -> OptionOverride:
    """Override ``response_format``."""
    return OptionOverride("response_format", value)


def with_response_schema(schema: Schema | dict[str, Any] | type[BaseModel]) -> OptionOverride:
    """Override ``response_schema``."""
    return OptionOverride("response_schema", schema)


def with_tools(tools: list[Tool] | tuple[Tool, ...]) -> OptionOverride:
    """Override ``tools``."""
    return OptionOverride("tools", tuple(tools))


def with_cache(enabled: bool = True) -> OptionOverride:
    """Override ``use_cache``."""
    return OptionOverride("use_cache", enabled)

"""System instruction composition.

The composed instruction is an ordered list of segments joined by blank
lines:

1. each system block, in order;
2. the free-text ``system`` (dropped when the vendor replaces it with blocks);
3. a language directive naming the human-readable language;
4. a schema instruction, when a response schema must be enforced by prompt;
5. a ``Response format:`` directive, when set and no schema applies.

Where the language directive sits and how the schema is fenced are per-vendor
policy, captured in `PromptPolicy`. Vendors genuinely disagree on whether
system blocks replace or extend the free-text system string; that divergence
is kept as ``blocks_replace_system`` rather than unified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from llmux.options import DEFAULT_LANGUAGE
from llmux.schema import to_wire_json

if TYPE_CHECKING:
    from llmux.options import GenerationOptions

SchemaFence = Literal["fenced", "raw"]

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "ko": "Korean",
    "ja": "Japanese",
    "zh": "Chinese",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "ru": "Russian",
    "pt": "Portuguese",
}

_STRICT_JSON_RULES = (
    "!!! CRITICAL - JSON OUTPUT RULES !!!\n"
    "You MUST output ONLY valid JSON. Follow these rules strictly:\n"
    "1. Start your response with the '{' character\n"
    "2. End your response with the '}' character\n"
    "3. Do NOT include any text before or after the JSON\n"
    "4. Do NOT use markdown code blocks\n"
    "5. Do NOT add explanations, comments, or descriptions"
)


@dataclass(frozen=True)
class PromptPolicy:
    """Per-vendor knobs for instruction composition."""

    #: System blocks replace (rather than precede) the free-text system.
    blocks_replace_system: bool = False
    #: Place the language directive ahead of every other segment.
    language_first: bool = True
    #: Wrap the schema instruction in a ```json fence, or append raw JSON.
    schema_fence: SchemaFence = "fenced"
    #: Vendor lacks native schema enforcement, so the schema goes in the prompt.
    inject_schema: bool = True
    #: Append JSON-only rules when ``response_format`` mentions JSON.
    strict_json_rules: bool = False
    #: Repeat the language directive as a trailing user message.
    language_reminder: bool = False


@dataclass(frozen=True)
class PromptSegment:
    """One piece of the composed instruction."""

    text: str
    cacheable: bool = False


def language_name(code: str) -> str:
    """Return the human-readable name for *code*, or *code* when unknown."""
    return LANGUAGE_NAMES.get(code.strip().lower(), code)


def needs_language_directive(code: str) -> bool:
    """Whether *code* asks for a non-default response language."""
    normalized = code.strip().lower()
    return bool(normalized) and normalized != DEFAULT_LANGUAGE


def language_directive(code: str) -> str:
    """Return the system-level language directive for *code*."""
    return f"Please respond in {language_name(code)} language."


def language_reminder(code: str) -> str:
    """Return the trailing user-message reminder for *code*."""
    return f"[Important!!]Please respond in **{language_name(code)}**."


def schema_instruction(schema_json: str, fence: SchemaFence) -> str:
    """Wrap serialized schema JSON in a strict-format directive."""
    if fence == "fenced":
        return (
            "Please provide your response strictly in the following JSON format, "
            "enclosed within ```json ... ```:\n"
            f"```json\n{schema_json}\n```"
        )
    return (
        "Please provide your response strictly in the following JSON format:\n"
        f"{schema_json}"
    )


def system_segments(
    options: GenerationOptions,
    policy: PromptPolicy,
    *,
    include_schema: bool = True,
) -> list[PromptSegment]:
    """Return the ordered instruction segments for *options*.

    Args:
        options: The caller's generation options.
        policy: The vendor's composition policy.
        include_schema: Set False when the schema is enforced natively or
            tools take precedence.

    Raises:
        RequestBuildError: If the response schema cannot be serialized.
    """
    segments: list[PromptSegment] = []

    for block in options.system_blocks:
        if block.text.strip():
            segments.append(PromptSegment(block.text, cacheable=block.cacheable))

    system = options.system.strip()
    if system and not (policy.blocks_replace_system and options.system_blocks):
        segments.append(PromptSegment(options.system))

    if needs_language_directive(options.language):
        directive = PromptSegment(language_directive(options.language))
        if policy.language_first:
            segments.insert(0, directive)
        else:
            segments.append(directive)

    schema = options.response_schema
    if schema is not None and include_schema and policy.inject_schema:
        segments.append(
            PromptSegment(schema_instruction(to_wire_json(schema), policy.schema_fence))
        )
    elif options.response_format and schema is None:
        text = f"Response format: {options.response_format}"
        if policy.strict_json_rules and "json" in options.response_format.lower():
            text = f"{text}\n\n{_STRICT_JSON_RULES}"
        segments.append(PromptSegment(text))

    return segments


def compose_system_prompt(
    options: GenerationOptions,
    policy: PromptPolicy | None = None,
    *,
    include_schema: bool = True,
) -> str:
    """Compose the full system instruction as one string.

    Pure function of its arguments; returns ``""`` when nothing applies.
    """
    segments = system_segments(
        options, policy or PromptPolicy(), include_schema=include_schema
    )
    return "\n\n".join(segment.text.strip() for segment in segments).strip()

"""Vendor request-shape and response-parsing characterization tests.

These build wire requests and parse canned responses without any transport,
pinning the payload each vendor receives for a given set of options.
"""

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from llmux.errors import ConfigurationError, EmptyContentError, RequestBuildError
from llmux.options import (
    GenerationOptions,
    SystemBlock,
    Tool,
    with_cache,
    with_language,
    with_max_tokens,
    with_response_format,
    with_response_schema,
    with_system,
    with_system_blocks,
    with_tools,
    with_top_k,
)
from llmux.providers import (
    PROFILES,
    ClaudeProvider,
    OpenAIProvider,
    Provider,
    ZaiProvider,
)
from llmux.providers.claude import PROMPT_CACHING_BETA
from llmux.providers.models import ParsedResponse
from llmux.providers.zai import THINKING_MIN_TOKENS
from llmux.response import assemble_response
from llmux.schema import Schema, object_schema, string_schema
from llmux.types import ToolInvocation
from llmux.usage import UsageInfo
from tests.helpers import Recorder

pytestmark = pytest.mark.contract

ANSWER = object_schema({"answer": string_schema()}, required=["answer"])
LOOKUP = Tool(
    "lookup",
    description="Look up a city",
    input_schema=object_schema({"city": string_schema()}, required=["city"]),
)


@pytest.fixture
def claude(make_config):
    return ClaudeProvider(make_config("claude"), client=Recorder().client())


@pytest.fixture
def zai(make_config):
    return ZaiProvider(make_config("zai"), client=Recorder().client())


@pytest.fixture
def compatible(make_config):
    def _make(vendor: str, **kwargs) -> OpenAIProvider:
        return OpenAIProvider(make_config(vendor, **kwargs))

    return _make


def _build(provider, *overrides, stream: bool = False):
    options = provider.resolve_options(overrides)
    return provider.build_request("Hi", options, stream=stream)


def test_providers_satisfy_protocol(claude, zai, compatible) -> None:
    for provider in (claude, zai, compatible("openai")):
        assert isinstance(provider, Provider)


# =============================================================================
# Claude
# =============================================================================


def test_claude_minimal_request(claude) -> None:
    request = _build(claude)

    assert request.endpoint == "/messages"
    assert request.headers == {}
    assert request.payload == {
        "model": "claude-opus-4-20250514",
        "messages": [{"role": "user", "content": "Hi"}],
        "max_tokens": 4096,
        "temperature": 0.7,
    }


def test_claude_cacheable_blocks_set_beta_header(claude) -> None:
    request = _build(
        claude,
        with_system_blocks([SystemBlock("Long context", cacheable=True)]),
        with_system("Be brief."),
    )

    assert request.payload["system"] == [
        {
            "type": "text",
            "text": "Long context",
            "cache_control": {"type": "ephemeral"},
        },
        {"type": "text", "text": "Be brief."},
    ]
    assert request.headers == {"anthropic-beta": PROMPT_CACHING_BETA}


def test_claude_use_cache_marks_last_segment(claude) -> None:
    request = _build(claude, with_system("Be brief."), with_cache())

    assert request.payload["system"][-1]["cache_control"] == {"type": "ephemeral"}
    assert "anthropic-beta" in request.headers


def test_claude_language_directive_follows_system(claude) -> None:
    request = _build(claude, with_system("Be brief."), with_language("ko"))

    texts = [block["text"] for block in request.payload["system"]]
    assert texts == ["Be brief.", "Please respond in Korean language."]


def test_claude_tools_take_precedence_over_schema(claude) -> None:
    request = _build(claude, with_tools([LOOKUP]), with_response_schema(ANSWER))

    assert request.payload["tools"] == [
        {
            "name": "lookup",
            "description": "Look up a city",
            "input_schema": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        }
    ]
    assert "system" not in request.payload


def test_claude_schema_is_injected_fenced(claude) -> None:
    request = _build(claude, with_response_schema(ANSWER))

    instruction = request.payload["system"][-1]["text"]
    assert "```json" in instruction
    assert '"answer"' in instruction
    assert "tools" not in request.payload


def test_claude_drops_tools_when_streaming(claude, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        request = _build(claude, with_tools([LOOKUP]), stream=True)

    assert "tools" not in request.payload
    assert request.payload["stream"] is True
    assert "does not support tool calling in streaming mode" in caplog.text


def test_claude_tool_without_schema_is_skipped(claude, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        request = _build(claude, with_tools([Tool("bare")]))

    assert "tools" not in request.payload
    assert "missing schema" in caplog.text


def test_claude_tool_schema_failure_aborts_build(claude) -> None:
    broken = Tool("broken", input_schema=Schema(type="string", min_length=-1))

    with pytest.raises(RequestBuildError, match="broken"):
        _build(claude, with_tools([LOOKUP, broken]))


def test_claude_forwards_top_k(claude) -> None:
    assert _build(claude, with_top_k(40)).payload["top_k"] == 40


def test_claude_parse_collects_text_tools_and_usage(claude) -> None:
    parsed = claude.parse_response(
        {
            "content": [
                {"type": "thinking", "thinking": "hmm"},
                {"type": "text", "text": "Hello "},
                {"type": "text", "text": "world"},
                {"type": "tool_use", "id": "tu_1", "name": "lookup", "input": {"city": "Seoul"}},
                {"type": "tool_use", "id": "tu_2", "name": "lookup", "input": {}},
            ],
            "stop_reason": "tool_use",
            "usage": {
                "input_tokens": 10,
                "output_tokens": 5,
                "cache_creation_input_tokens": 100,
                "cache_read_input_tokens": 0,
            },
        }
    )

    assert parsed.text_segments == ["Hello ", "world"]
    assert parsed.tool_calls[0] == ToolInvocation("tu_1", "lookup", '{"city": "Seoul"}')
    assert parsed.reasoning == "hmm"
    assert parsed.usage == UsageInfo(
        input_tokens=10, output_tokens=5, cache_create_tokens=100
    )

    result = assemble_response(parsed, GenerationOptions(), vendor="claude")
    assert result.is_tool_call
    assert result.tool_call.id == "tu_1"
    assert result.text == ""


def test_claude_thinking_only_response_is_empty_content(claude) -> None:
    parsed = claude.parse_response(
        {
            "content": [{"type": "thinking", "thinking": "long thoughts"}],
            "stop_reason": "max_tokens",
            "usage": {"input_tokens": 1, "output_tokens": 4096},
        }
    )

    with pytest.raises(EmptyContentError) as exc:
        assemble_response(parsed, GenerationOptions(), vendor="claude")

    assert exc.value.hint == "Increase max_tokens."


# =============================================================================
# Z.AI
# =============================================================================


def test_zai_thinking_model_raises_token_floor(zai) -> None:
    request = _build(zai, with_max_tokens(1000))

    assert zai.thinking is True
    assert request.payload["thinking"] == {"type": "enabled"}
    assert request.payload["max_tokens"] == THINKING_MIN_TOKENS
    assert request.payload["messages"][0] == {
        "role": "system",
        "content": "You are a helpful assistant.",
    }


def test_zai_non_thinking_model_keeps_budget(make_config) -> None:
    provider = ZaiProvider(make_config("zai", model="glm-4.5"), client=Recorder().client())

    request = _build(provider, with_max_tokens(1000))

    assert "thinking" not in request.payload
    assert request.payload["max_tokens"] == 1000


def test_zai_schema_uses_json_mode_and_raw_instruction(zai) -> None:
    request = _build(zai, with_response_schema(ANSWER))

    assert request.payload["response_format"] == {"type": "json_object"}
    system = request.payload["messages"][0]["content"]
    assert system.endswith(
        'JSON format:\n{"type":"object","properties":{"answer":{"type":"string"}},"required":["answer"]}'
    )
    assert "```" not in system


def test_zai_json_response_format_adds_strict_rules(zai) -> None:
    request = _build(zai, with_response_format("json"))

    assert request.payload["response_format"] == {"type": "json_object"}
    assert "!!! CRITICAL - JSON OUTPUT RULES !!!" in request.payload["messages"][0]["content"]


def test_zai_drops_tools_but_keeps_the_schema(zai, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        request = _build(zai, with_tools([LOOKUP]), with_response_schema(ANSWER))

    assert "tools" not in request.payload
    assert request.payload["response_format"] == {"type": "json_object"}
    assert "JSON format:\n" in request.payload["messages"][0]["content"]
    assert "ignoring tools" in caplog.text


@pytest.mark.parametrize("vendor", ["deepseek", "groq", "cerebras", "inception", "ai302"])
def test_prompted_vendor_keeps_schema_when_tools_are_unsupported(
    compatible, vendor: str
) -> None:
    request = _build(
        compatible(vendor), with_tools([LOOKUP]), with_response_schema(ANSWER)
    )

    assert "tools" not in request.payload
    assert "```json" in request.payload["messages"][0]["content"]
    assert '"answer"' in request.payload["messages"][0]["content"]


def test_zai_parse_reasoning_only_is_empty_content(zai) -> None:
    parsed = zai.parse_response(
        {
            "choices": [
                {
                    "index": 0,
                    "message": {"content": "", "reasoning_content": "thinking"},
                    "finish_reason": "length",
                }
            ],
            "usage": {"prompt_tokens": 4, "completion_tokens": 16384},
        }
    )

    assert parsed.reasoning == "thinking"
    with pytest.raises(EmptyContentError, match="reasoning") as exc:
        assemble_response(parsed, GenerationOptions(), vendor="zai")
    assert exc.value.hint == "Increase max_tokens."


# =============================================================================
# OpenAI and compatible profiles
# =============================================================================


def test_unknown_compatible_vendor_is_rejected(make_config) -> None:
    with pytest.raises(ConfigurationError, match="not an OpenAI-compatible vendor"):
        OpenAIProvider(make_config("claude"))


def test_every_compatible_profile_matches_its_vendor() -> None:
    for vendor, profile in PROFILES.items():
        assert profile.capabilities.vendor == vendor


def test_openai_native_schema_is_strict(compatible) -> None:
    provider = compatible("openai")

    request = _build(provider, with_system("S"), with_response_schema(ANSWER))

    assert request.endpoint == "chat.completions"
    assert request.payload["response_format"] == {
        "type": "json_schema",
        "json_schema": {
            "name": "structured_output",
            "schema": {
                "type": "object",
                "properties": {"answer": {"type": "string"}},
                "required": ["answer"],
                "additionalProperties": False,
            },
            "strict": True,
        },
    }
    assert request.payload["messages"][0] == {"role": "system", "content": "S"}


def test_openai_tools_suppress_response_format(compatible) -> None:
    request = _build(
        compatible("openai"), with_tools([LOOKUP]), with_response_schema(ANSWER)
    )

    assert "response_format" not in request.payload
    assert request.payload["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "lookup",
                "parameters": {
                    "type": "object",
                    "properties": {"city": {"type": "string"}},
                    "required": ["city"],
                },
                "description": "Look up a city",
            },
        }
    ]


def test_openai_streaming_drops_schema_and_requests_usage(compatible, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        request = _build(compatible("openai"), with_response_schema(ANSWER), stream=True)

    assert "response_format" not in request.payload
    assert request.payload["stream"] is True
    assert request.payload["stream_options"] == {"include_usage": True}
    assert "ignoring response schema" in caplog.text


def test_openai_blocks_replace_system_and_language_leads(compatible) -> None:
    request = _build(
        compatible("openai"),
        with_system_blocks([SystemBlock("Block")]),
        with_system("Dropped"),
        with_language("fr"),
    )

    assert request.payload["messages"][0]["content"] == (
        "Please respond in French language.\n\nBlock"
    )


def test_openai_omits_top_k(compatible) -> None:
    assert "top_k" not in _build(compatible("openai"), with_top_k(5)).payload


def test_openai_tool_failure_is_fatal(compatible) -> None:
    broken = Tool("broken", input_schema=Schema(type="array", max_items=-1))

    with pytest.raises(RequestBuildError):
        _build(compatible("openai"), with_tools([broken]))


def test_openrouter_skips_broken_tool(compatible, caplog) -> None:
    broken = Tool("broken", input_schema=Schema(type="array", max_items=-1))

    with caplog.at_level(logging.WARNING):
        request = _build(compatible("openrouter"), with_tools([broken, LOOKUP]))

    assert [t["function"]["name"] for t in request.payload["tools"]] == ["lookup"]
    assert "Failed to convert schema for tool 'broken'" in caplog.text


def test_openrouter_gates_tools_by_model(compatible, caplog) -> None:
    provider = compatible("openrouter", model="meta-llama/llama-3-70b")

    with caplog.at_level(logging.WARNING):
        request = _build(provider, with_tools([LOOKUP]))

    assert "tools" not in request.payload
    assert "meta-llama/llama-3-70b" in caplog.text


def test_groq_appends_language_reminder(compatible) -> None:
    request = _build(compatible("groq"), with_language("ko"))

    messages = request.payload["messages"]
    assert messages[0]["content"] == (
        "You are a helpful assistant.\n\nPlease respond in Korean language."
    )
    assert messages[1] == {"role": "user", "content": "Hi"}
    assert messages[2] == {
        "role": "user",
        "content": "[Important!!]Please respond in **Korean**.",
    }


def test_groq_skips_reminder_for_english(compatible) -> None:
    assert len(_build(compatible("groq"), with_language("en")).payload["messages"]) == 2


def test_deepseek_injects_schema_into_prompt(compatible) -> None:
    request = _build(compatible("deepseek"), with_response_schema(ANSWER))

    assert "response_format" not in request.payload
    assert "```json" in request.payload["messages"][0]["content"]


def test_cerebras_defaults(compatible) -> None:
    payload = _build(compatible("cerebras")).payload

    assert payload["temperature"] == 0.6
    assert payload["top_p"] == 0.95
    assert payload["max_tokens"] == 40000


def test_openai_parse_reads_sdk_objects(compatible) -> None:
    provider = compatible("deepseek")
    raw = SimpleNamespace(
        choices=[
            SimpleNamespace(
                finish_reason="stop",
                message=SimpleNamespace(
                    content='Sure: {"answer": "42"}',
                    tool_calls=None,
                    reasoning_content="because",
                ),
            )
        ],
        usage=SimpleNamespace(
            prompt_tokens=7,
            completion_tokens=3,
            prompt_tokens_details=None,
            prompt_cache_hit_tokens=5,
            prompt_cache_miss_tokens=2,
        ),
    )

    parsed = provider.parse_response(raw)
    result = assemble_response(
        parsed, GenerationOptions(response_schema=ANSWER), vendor="deepseek"
    )

    assert parsed.reasoning == "because"
    assert result.text == '{"answer": "42"}'
    assert result.usage == UsageInfo(
        input_tokens=7, output_tokens=3, cache_hit_tokens=5, cache_miss_tokens=2
    )


# =============================================================================
# Response assembly
# =============================================================================


def test_assemble_keeps_raw_text_when_json_missing(caplog) -> None:
    parsed = ParsedResponse(text_segments=["no json here"])

    with caplog.at_level(logging.WARNING):
        result = assemble_response(
            parsed, GenerationOptions(response_schema=ANSWER), vendor="claude"
        )

    assert result.text == "no json here"
    assert "Failed to extract JSON" in caplog.text


def test_assemble_blank_text_is_empty_content() -> None:
    with pytest.raises(EmptyContentError, match="finish_reason=stop"):
        assemble_response(
            ParsedResponse(text_segments=["  "], finish_reason="stop"),
            GenerationOptions(),
            vendor="openai",
        )

    with pytest.raises(EmptyContentError):
        assemble_response(ParsedResponse(), GenerationOptions(), vendor="openai")

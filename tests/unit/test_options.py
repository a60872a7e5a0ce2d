"""GenerationOptions build/override semantics and validation."""

from __future__ import annotations

from pydantic import BaseModel
import pytest

from llmux.errors import ConfigurationError
from llmux.options import (
    GenerationOptions,
    OptionOverride,
    SystemBlock,
    Tool,
    with_cache,
    with_language,
    with_max_tokens,
    with_response_schema,
    with_system,
    with_system_blocks,
    with_temperature,
    with_tools,
)
from llmux.schema import Schema, object_schema, string_schema

pytestmark = pytest.mark.unit


def test_build_without_overrides_returns_defaults() -> None:
    options = GenerationOptions.build()

    assert options == GenerationOptions()
    assert options.temperature is None
    assert options.tools == ()
    assert options.use_cache is False


def test_later_override_wins() -> None:
    options = GenerationOptions.build(
        with_temperature(0.1), with_language("ko"), with_temperature(0.9)
    )

    assert options.temperature == 0.9
    assert options.language == "ko"


def test_list_overrides_replace_rather_than_merge() -> None:
    first = [Tool("a", input_schema=object_schema({}))]
    second = [Tool("b", input_schema=object_schema({}))]

    options = GenerationOptions.build(
        with_tools(first),
        with_system_blocks([SystemBlock("x")]),
        with_tools(second),
        with_system_blocks([SystemBlock("y")]),
    )

    assert [t.name for t in options.tools] == ["b"]
    assert [b.text for b in options.system_blocks] == ["y"]


def test_apply_layers_on_top_of_existing_value() -> None:
    defaults = GenerationOptions(temperature=0.7, max_tokens=2048, system="S")

    options = defaults.apply(with_max_tokens(10), with_cache())

    assert options.temperature == 0.7
    assert options.max_tokens == 10
    assert options.system == "S"
    assert options.use_cache is True
    assert defaults.max_tokens == 2048


def test_unknown_override_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="Unknown generation option") as exc:
        GenerationOptions.build(OptionOverride("temprature", 0.5))

    assert exc.value.hint is not None
    assert "temperature" in exc.value.hint


@pytest.mark.parametrize(
    "kwargs",
    [
        {"temperature": "hot"},
        {"temperature": True},
        {"top_p": "0.9"},
        {"max_tokens": 0},
        {"max_tokens": 1.5},
        {"max_tokens": True},
        {"language": 3},
        {"system_blocks": ("plain string",)},
        {"tools": (Tool(""),)},
        {"response_schema": 42},
    ],
)
def test_invalid_shapes_fail_fast(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        GenerationOptions(**kwargs)


def test_duplicate_tool_names_are_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Duplicate tool name"):
        GenerationOptions(tools=(Tool("lookup"), Tool("lookup")))


def test_response_schema_accepts_dict_and_pydantic_model() -> None:
    class Answer(BaseModel):
        answer: str

    from_dict = GenerationOptions.build(
        with_response_schema({"type": "object", "properties": {"a": {"type": "string"}}})
    )
    from_model = GenerationOptions.build(with_response_schema(Answer))

    assert isinstance(from_dict.response_schema, Schema)
    assert from_dict.response_schema.properties is not None
    assert isinstance(from_model.response_schema, Schema)
    assert from_model.response_schema.required == ("answer",)


def test_response_schema_field_is_normalized_on_construction() -> None:
    options = GenerationOptions(
        response_schema={"type": "object", "properties": {"a": {"type": "string"}}}
    )

    assert isinstance(options.response_schema, Schema)
    assert options.response_schema.type == "object"


def test_tools_take_precedence_over_structured_output() -> None:
    schema = object_schema({"a": string_schema()})

    schema_only = GenerationOptions(response_schema=schema)
    both = GenerationOptions(
        response_schema=schema, tools=(Tool("t", input_schema=schema),)
    )

    assert schema_only.wants_structured_output is True
    assert schema_only.has_tools is False
    assert both.wants_structured_output is False
    assert both.has_tools is True


def test_options_are_immutable() -> None:
    options = GenerationOptions.build(with_system("S"))

    with pytest.raises(AttributeError):
        options.system = "T"  # type: ignore[misc]

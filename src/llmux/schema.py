"""Structural schemas for structured output and tool parameters.

`Schema` is a recursive, read-only mirror of the JSON-Schema subset that
vendors accept. It is tagged by ``type`` but deliberately does not enforce
consistency between the tag and the populated fields: ``properties`` on a
node without ``type="object"`` is passed through as-is.

The codec (`to_wire_map` / `to_wire_json`) emits a key only when the field is
present. Numeric constraints use presence (``is not None``) rather than
truthiness, so an explicit ``0`` survives. Key order is stable so golden
comparisons are reproducible.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any

from llmux.errors import RequestBuildError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic import BaseModel

_REF_PREFIX = "#/$defs/"


@dataclass(frozen=True)
class Schema:
    """A recursive schema node.

    ``const`` and ``default`` treat ``None`` as absent, matching how vendors
    read omitted keys.
    """

    type: str = ""
    description: str = ""
    format: str = ""
    properties: Mapping[str, Schema] | None = None
    items: Schema | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str = ""
    minimum: float | None = None
    maximum: float | None = None
    multiple_of: float | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool = False
    required: tuple[str, ...] = field(default_factory=tuple)
    enum: tuple[Any, ...] = field(default_factory=tuple)
    const: Any = None
    default: Any = None
    ref: str = ""
    additional_properties: bool | Schema | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schema:
        """Build a schema from a JSON-Schema-shaped mapping.

        Unknown keywords are ignored. ``anyOf`` with a ``null`` branch (the
        shape pydantic emits for optional fields) collapses to the non-null
        branch.

        Raises:
            RequestBuildError: If a nested node is not a mapping.
        """
        return _schema_from_dict(data, path="$")


def object_schema(
    properties: Mapping[str, Schema],
    *,
    required: Sequence[str] = (),
    description: str = "",
    additional_properties: bool | Schema | None = None,
) -> Schema:
    """Return an ``object`` node."""
    return Schema(
        type="object",
        description=description,
        properties=dict(properties),
        required=tuple(required),
        additional_properties=additional_properties,
    )


def array_schema(
    items: Schema,
    *,
    description: str = "",
    min_items: int | None = None,
    max_items: int | None = None,
    unique_items: bool = False,
) -> Schema:
    """Return an ``array`` node."""
    return Schema(
        type="array",
        description=description,
        items=items,
        min_items=min_items,
        max_items=max_items,
        unique_items=unique_items,
    )


def string_schema(
    *,
    description: str = "",
    enum: Sequence[str] = (),
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str = "",
    format: str = "",  # noqa: A002
) -> Schema:
    """Return a ``string`` node."""
    return Schema(
        type="string",
        description=description,
        enum=tuple(enum),
        min_length=min_length,
        max_length=max_length,
        pattern=pattern,
        format=format,
    )


def number_schema(
    *,
    description: str = "",
    minimum: float | None = None,
    maximum: float | None = None,
    multiple_of: float | None = None,
    integer: bool = False,
) -> Schema:
    """Return a ``number`` (or ``integer``) node."""
    return Schema(
        type="integer" if integer else "number",
        description=description,
        minimum=minimum,
        maximum=maximum,
        multiple_of=multiple_of,
    )


def boolean_schema(*, description: str = "") -> Schema:
    """Return a ``boolean`` node."""
    return Schema(type="boolean", description=description)


# =============================================================================
# Codec
# =============================================================================


def to_wire_map(schema: Schema) -> dict[str, Any]:
    """Encode *schema* as an ordered, JSON-ready mapping.

    Raises:
        RequestBuildError: If any nested node is malformed. Callers never
            receive a partially built map.
    """
    return _encode(schema, "$")


def to_wire_json(schema: Schema) -> str:
    """Encode *schema* as compact JSON text."""
    wire = to_wire_map(schema)
    try:
        return json.dumps(wire, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise RequestBuildError(f"Schema is not JSON serializable: {e}") from e


def schema_from_model(model: type[BaseModel]) -> Schema:
    """Convert a pydantic model class into a `Schema`.

    Local ``#/$defs/...`` references are inlined; recursive references are
    left as ``$ref`` strings.
    """
    raw = model.model_json_schema()
    defs = raw.pop("$defs", {})
    return Schema.from_dict(_inline_refs(raw, defs, seen=()))


def _encode(schema: Any, path: str) -> dict[str, Any]:
    if not isinstance(schema, Schema):
        raise RequestBuildError(
            f"Invalid schema at {path}: expected Schema, got {type(schema).__name__}"
        )

    wire: dict[str, Any] = {}
    if schema.type:
        wire["type"] = schema.type
    if schema.description:
        wire["description"] = schema.description
    if schema.format:
        wire["format"] = schema.format

    if schema.properties is not None:
        if not isinstance(schema.properties, Mapping):
            raise RequestBuildError(
                f"Invalid schema at {path}: properties must be a mapping"
            )
        props: dict[str, Any] = {}
        for name, prop in schema.properties.items():
            if not isinstance(name, str) or not name:
                raise RequestBuildError(
                    f"Invalid schema at {path}: property names must be non-empty strings"
                )
            props[name] = _encode(prop, f"{path}.properties.{name}")
        wire["properties"] = props

    if schema.items is not None:
        wire["items"] = _encode(schema.items, f"{path}.items")

    _put_count(wire, "minLength", schema.min_length, path)
    _put_count(wire, "maxLength", schema.max_length, path)
    if schema.pattern:
        wire["pattern"] = schema.pattern
    _put_number(wire, "minimum", schema.minimum, path)
    _put_number(wire, "maximum", schema.maximum, path)
    _put_number(wire, "multipleOf", schema.multiple_of, path)
    _put_count(wire, "minItems", schema.min_items, path)
    _put_count(wire, "maxItems", schema.max_items, path)

    if schema.unique_items:
        wire["uniqueItems"] = True

    if schema.required:
        for name in schema.required:
            if not isinstance(name, str):
                raise RequestBuildError(
                    f"Invalid schema at {path}: required entries must be strings"
                )
        wire["required"] = list(schema.required)

    if schema.enum:
        wire["enum"] = list(schema.enum)
    if schema.const is not None:
        wire["const"] = schema.const
    if schema.default is not None:
        wire["default"] = schema.default
    if schema.ref:
        wire["$ref"] = schema.ref

    additional = schema.additional_properties
    if isinstance(additional, Schema):
        wire["additionalProperties"] = _encode(
            additional, f"{path}.additionalProperties"
        )
    elif additional is not None:
        wire["additionalProperties"] = bool(additional)

    return wire


def _put_count(wire: dict[str, Any], key: str, value: Any, path: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RequestBuildError(
            f"Invalid schema at {path}: {key} must be a non-negative integer, got {value!r}"
        )
    wire[key] = value


def _put_number(wire: dict[str, Any], key: str, value: Any, path: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RequestBuildError(
            f"Invalid schema at {path}: {key} must be a number, got {value!r}"
        )
    wire[key] = value


def _schema_from_dict(data: Any, *, path: str) -> Schema:
    if not isinstance(data, Mapping):
        raise RequestBuildError(
            f"Invalid schema at {path}: expected an object, got {type(data).__name__}"
        )

    any_of = data.get("anyOf")
    if "type" not in data and isinstance(any_of, list):
        branches = [b for b in any_of if isinstance(b, Mapping) and b.get("type") != "null"]
        if branches:
            merged = {**branches[0], **{k: v for k, v in data.items() if k != "anyOf"}}
            return _schema_from_dict(merged, path=path)

    raw_type = data.get("type", "")
    if isinstance(raw_type, list):
        raw_type = next((t for t in raw_type if t != "null"), "")

    properties: dict[str, Schema] | None = None
    raw_props = data.get("properties")
    if raw_props is not None:
        if not isinstance(raw_props, Mapping):
            raise RequestBuildError(
                f"Invalid schema at {path}: properties must be an object"
            )
        properties = {
            name: _schema_from_dict(sub, path=f"{path}.properties.{name}")
            for name, sub in raw_props.items()
        }

    items = None
    if data.get("items") is not None:
        items = _schema_from_dict(data["items"], path=f"{path}.items")

    additional: bool | Schema | None = None
    raw_additional = data.get("additionalProperties")
    if isinstance(raw_additional, Mapping):
        additional = _schema_from_dict(
            raw_additional, path=f"{path}.additionalProperties"
        )
    elif raw_additional is not None:
        additional = bool(raw_additional)

    required = data.get("required", ())
    if not isinstance(required, (list, tuple)):
        raise RequestBuildError(f"Invalid schema at {path}: required must be a list")

    return Schema(
        type=str(raw_type or ""),
        description=str(data.get("description", "") or ""),
        format=str(data.get("format", "") or ""),
        properties=properties,
        items=items,
        min_length=data.get("minLength"),
        max_length=data.get("maxLength"),
        pattern=str(data.get("pattern", "") or ""),
        minimum=data.get("minimum"),
        maximum=data.get("maximum"),
        multiple_of=data.get("multipleOf"),
        min_items=data.get("minItems"),
        max_items=data.get("maxItems"),
        unique_items=bool(data.get("uniqueItems", False)),
        required=tuple(required),
        enum=tuple(data.get("enum", ()) or ()),
        const=data.get("const"),
        default=data.get("default"),
        ref=str(data.get("$ref", "") or ""),
        additional_properties=additional,
    )


def _inline_refs(node: Any, defs: Mapping[str, Any], *, seen: tuple[str, ...]) -> Any:
    """Replace local ``$defs`` references with their definitions."""
    if isinstance(node, list):
        return [_inline_refs(item, defs, seen=seen) for item in node]
    if not isinstance(node, dict):
        return node

    ref = node.get("$ref")
    if isinstance(ref, str) and ref.startswith(_REF_PREFIX):
        name = ref.removeprefix(_REF_PREFIX)
        target = defs.get(name)
        if isinstance(target, dict) and name not in seen:
            extra = {k: v for k, v in node.items() if k != "$ref"}
            return _inline_refs({**target, **extra}, defs, seen=(*seen, name))
        return node

    return {key: _inline_refs(value, defs, seen=seen) for key, value in node.items()}

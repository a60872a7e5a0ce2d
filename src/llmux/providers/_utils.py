"""Shared utilities for provider implementations."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from llmux.errors import RequestBuildError


def to_strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a wire schema map for strict structured-output mode.

    For every ``object`` node, ``additionalProperties`` becomes False and,
    when no ``required`` list was given, every property is required.
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        updated: dict[str, Any] = {key: walk(value) for key, value in node.items()}

        if updated.get("type") == "object" or "properties" in updated:
            properties = updated.get("properties", {})
            if isinstance(properties, dict):
                updated["additionalProperties"] = False
                if "required" not in updated:
                    updated["required"] = list(properties)

        return updated

    result = walk(normalized)
    if not isinstance(result, dict) or result.get("type") not in (None, "object"):
        raise RequestBuildError(
            "Invalid response_schema: strict structured output needs an object schema",
            hint="Wrap the value in an object_schema(...) with a single property.",
        )
    return result

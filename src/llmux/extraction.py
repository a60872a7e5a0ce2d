"""Locate JSON payloads inside free-form model output.

Models asked for JSON often wrap it in prose or markdown fences. Candidates
are tried in priority order and each is validated with ``json.loads`` before
being returned:

1. the interior of a ```json fenced block;
2. the whole trimmed text, when it is already an object or array;
3. the outer span from the earliest opening bracket to the last matching
   closing bracket (falling back to the other bracket type).

`extract_json` is best-effort and returns the trimmed input when nothing
validates; `extract_json_strict` raises instead.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from llmux.errors import JSONExtractionError

log = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_PAIRS = {"{": "}", "[": "]"}


def extract_json(raw: str) -> str:
    """Return the most likely JSON fragment of *raw*, else *raw* trimmed."""
    found = _find_json(raw)
    if found is None:
        return _cleanup(raw)
    return found


def extract_json_strict(raw: str) -> str:
    """Return the JSON fragment of *raw*.

    Raises:
        JSONExtractionError: If no candidate parses as JSON.
    """
    found = _find_json(raw)
    if found is None:
        raise JSONExtractionError(
            "No valid JSON found in the text or a ```json block",
            hint="Ask the model to answer with a single JSON object.",
        )
    return found


def loads_json(raw: str) -> Any:
    """Extract and decode the JSON payload of *raw*.

    Raises:
        JSONExtractionError: If no candidate parses as JSON.
    """
    return json.loads(extract_json_strict(raw))


def _cleanup(raw: str) -> str:
    text = raw.strip()
    # A lone backtick is a broken fence artifact, never meaningful content.
    if text.count("`") == 1:
        text = text.replace("`", "").strip()
    return text


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _find_json(raw: str) -> str | None:
    text = _cleanup(raw)
    if not text:
        return None

    match = _JSON_FENCE_RE.search(text)
    if match:
        candidate = match.group(1).strip()
        if _is_json(candidate):
            return candidate

    if text.startswith("```") and text.endswith("```") and len(text) >= 6:
        text = text[3:-3].strip()

    if (text[:1], text[-1:]) in {("{", "}"), ("[", "]")} and _is_json(text):
        return text

    openers = sorted(
        (index, char) for char in _PAIRS if (index := text.find(char)) != -1
    )
    for start, opener in openers:
        end = text.rfind(_PAIRS[opener])
        if end <= start:
            continue
        candidate = text[start : end + 1]
        if _is_json(candidate):
            return candidate

    log.debug("No JSON payload found in %d chars of model output", len(text))
    return None

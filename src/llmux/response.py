"""Turn a parsed vendor response into a `GenerationResult`."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from llmux.errors import EmptyContentError, JSONExtractionError
from llmux.extraction import extract_json_strict
from llmux.types import GenerationResult

if TYPE_CHECKING:
    from llmux.options import GenerationOptions
    from llmux.providers.models import ParsedResponse

log = logging.getLogger(__name__)


def assemble_response(
    parsed: ParsedResponse,
    options: GenerationOptions,
    *,
    vendor: str,
    logger: logging.Logger | None = None,
) -> GenerationResult:
    """Classify *parsed* as a tool invocation or text.

    The first tool invocation wins. Otherwise text segments are concatenated
    in order and, when a response schema was requested, narrowed to the JSON
    payload on a best-effort basis.

    Raises:
        EmptyContentError: When there is no tool call and the text is blank,
            including the case where the model spent its budget on reasoning.
    """
    logger = logger or log

    if parsed.tool_calls:
        if len(parsed.tool_calls) > 1:
            logger.info(
                "[%s] Response contained %d tool calls; returning the first",
                vendor,
                len(parsed.tool_calls),
            )
        call = parsed.tool_calls[0]
        logger.info("[%s] Tool call detected: %s", vendor, call.name)
        return GenerationResult(tool_call=call, usage=parsed.usage)

    text = "".join(parsed.text_segments)
    if not text.strip():
        if parsed.reasoning:
            logger.warning(
                "[%s] Content is empty but reasoning exists; token budget may be insufficient",
                vendor,
            )
            raise EmptyContentError(
                f"{vendor} returned no content: reasoning consumed the token budget",
                hint="Increase max_tokens.",
            )
        reason = f" (finish_reason={parsed.finish_reason})" if parsed.finish_reason else ""
        raise EmptyContentError(f"{vendor} returned no content{reason}")

    if options.response_schema is not None:
        try:
            text = extract_json_strict(text)
        except JSONExtractionError as exc:
            logger.warning(
                "[%s] Failed to extract JSON from response, returning raw text: %s",
                vendor,
                exc,
            )

    return GenerationResult(text=text, usage=parsed.usage)

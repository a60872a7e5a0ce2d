"""Exception hierarchy for llmux."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class LlmuxError(Exception):
    """Base exception for all llmux errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(LlmuxError):
    """Configuration validation or resolution failed (missing key, bad option)."""


class RequestBuildError(LlmuxError):
    """A schema or tool definition could not be translated to the wire format."""


class TransportError(LlmuxError):
    """Network or HTTP failure before a vendor response could be read."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        vendor: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.vendor = vendor


class VendorAPIError(LlmuxError):
    """The vendor answered with a non-2xx status and an error envelope.

    The message is normalized to carry the vendor error code and message when
    they can be extracted, falling back to the raw body text.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        vendor: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.vendor = vendor
        self.code = code


class StreamDecodeError(LlmuxError):
    """A single stream frame could not be decoded.

    Recovered locally: the frame is skipped and decoding continues.
    """

    def __init__(self, message: str, *, frame: str | None = None) -> None:
        super().__init__(message)
        self.frame = frame


class StreamFatalError(LlmuxError):
    """The stream terminated abnormally (transport failure or vendor error event)."""


class StreamCancelledError(StreamFatalError):
    """The caller cancelled the stream while a chunk was pending delivery."""


class EmptyContentError(LlmuxError):
    """The vendor produced no usable content.

    Raised both when no content segments came back and when the only content
    was blank text.
    """


class JSONExtractionError(LlmuxError):
    """No valid JSON payload could be located in model output."""


class ChannelClosedError(LlmuxError):
    """A chunk channel was used after close, or closed twice."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)

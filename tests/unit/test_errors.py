from __future__ import annotations

import asyncio

import httpx
import pytest

from llmux.errors import (
    ChannelClosedError,
    ConfigurationError,
    EmptyContentError,
    JSONExtractionError,
    LlmuxError,
    RequestBuildError,
    StreamCancelledError,
    StreamDecodeError,
    StreamFatalError,
    TransportError,
    VendorAPIError,
)
from llmux.providers._errors import (
    extract_status_code,
    vendor_error_from_body,
    wrap_vendor_error,
)

pytestmark = pytest.mark.unit


def test_vendor_api_error_structured_metadata() -> None:
    err = VendorAPIError(
        "boom", hint="do this", status_code=429, vendor="groq", code="rate_limit"
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.status_code == 429
    assert err.vendor == "groq"
    assert err.code == "rate_limit"


def test_vendor_api_error_defaults_to_none() -> None:
    err = VendorAPIError("fail")
    assert err.hint is None
    assert err.status_code is None
    assert err.vendor is None
    assert err.code is None


@pytest.mark.parametrize(
    "cls",
    [
        ConfigurationError,
        RequestBuildError,
        TransportError,
        VendorAPIError,
        StreamDecodeError,
        StreamFatalError,
        EmptyContentError,
        JSONExtractionError,
        ChannelClosedError,
    ],
)
def test_every_error_is_an_llmux_error(cls: type[LlmuxError]) -> None:
    assert issubclass(cls, LlmuxError)


def test_cancellation_is_a_fatal_stream_error() -> None:
    """Callers catching StreamFatalError also see caller-initiated cancels."""
    assert issubclass(StreamCancelledError, StreamFatalError)


class _StatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def test_extract_status_code_walks_the_chain() -> None:
    try:
        try:
            raise _StatusError("inner", 503)
        except _StatusError as inner:
            raise RuntimeError("outer") from inner
    except RuntimeError as outer:
        assert extract_status_code(outer) == 503


def test_extract_status_code_reads_response_attribute() -> None:
    request = httpx.Request("POST", "https://llm.test/v1/messages")
    response = httpx.Response(502, request=request)
    err = httpx.HTTPStatusError("bad gateway", request=request, response=response)

    assert extract_status_code(err) == 502


def test_wrap_maps_status_errors_with_auth_hint() -> None:
    err = wrap_vendor_error(
        _StatusError("invalid api key", 401), vendor="deepseek", phase="generate"
    )

    assert isinstance(err, VendorAPIError)
    assert err.status_code == 401
    assert err.vendor == "deepseek"
    assert str(err) == "deepseek generate failed (status=401): invalid api key"
    assert err.hint is not None
    assert "DEEPSEEK_API_KEY" in err.hint


def test_wrap_maps_network_errors_to_transport_error() -> None:
    err = wrap_vendor_error(httpx.ReadTimeout("timed out"), vendor="zai", phase="stream")

    assert isinstance(err, TransportError)
    assert err.vendor == "zai"
    assert "timed out" in str(err)


def test_wrap_passes_mapped_errors_through() -> None:
    original = VendorAPIError("already mapped", status_code=500)

    err = wrap_vendor_error(original, vendor="claude", phase="generate")

    assert err is original
    assert err.vendor == "claude"


def test_wrap_reraises_cancellation() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_vendor_error(asyncio.CancelledError(), vendor="claude", phase="stream")


@pytest.mark.parametrize(
    ("body", "code", "expected"),
    [
        (
            '{"type": "error", "error": {"type": "invalid_request_error", "message": "bad"}}',
            "invalid_request_error",
            "claude API error (status=400): invalid_request_error: bad",
        ),
        (
            '{"error": {"code": "1211", "message": "model not found"}}',
            "1211",
            "claude API error (status=400): 1211: model not found",
        ),
        (
            '{"code": "bad_param", "message": "nope"}',
            "bad_param",
            "claude API error (status=400): bad_param: nope",
        ),
        (
            '{"error": "plain failure"}',
            None,
            "claude API error (status=400): plain failure",
        ),
        (
            "<html>Bad Request</html>",
            None,
            "claude API error (status=400): <html>Bad Request</html>",
        ),
        ("", None, "claude API error (status=400): empty response body"),
    ],
)
def test_vendor_error_from_body_envelopes(
    body: str, code: str | None, expected: str
) -> None:
    err = vendor_error_from_body(400, body, vendor="claude")

    assert str(err) == expected
    assert err.code == code
    assert err.status_code == 400
    assert err.vendor == "claude"


def test_vendor_error_from_body_truncates_raw_text() -> None:
    err = vendor_error_from_body(500, "x" * 2000, vendor="ai302")

    assert len(str(err)) < 600


def test_vendor_error_from_body_auth_hint() -> None:
    err = vendor_error_from_body(
        403, '{"error": {"message": "forbidden"}}', vendor="cerebras"
    )

    assert err.hint is not None
    assert "CEREBRAS_API_KEY" in err.hint

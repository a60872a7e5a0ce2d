"""Shared provider-side error helpers.

Vendor SDK and httpx exceptions are mapped into the llmux hierarchy here so
callers can branch on `VendorAPIError.status_code` and `TransportError`
without substring matching. No retry decisions are made at this layer.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from llmux.config import env_var
from llmux.errors import (
    LlmuxError,
    TransportError,
    VendorAPIError,
    _walk_exception_chain,
)

#: Error bodies are echoed into messages; keep them readable.
_MAX_BODY_CHARS = 500


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def _auth_hint(vendor: str, status_code: int | None, cause_message: str) -> str | None:
    """Generate a hint for auth errors naming the vendor's env var."""
    cause_lower = cause_message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        return (
            "Check credentials/permissions "
            f"(try setting {env_var(vendor, 'API_KEY')} or VendorConfig.api_key)."
        )
    return None


def _is_network_error(exc: BaseException) -> bool:
    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            return True
        # openai.APIConnectionError / APITimeoutError, matched by name so the
        # SDK stays an optional import at this layer.
        if type(e).__name__ in {"APIConnectionError", "APITimeoutError"}:
            return True
    return False


def _error_code(exc: BaseException) -> str | None:
    for e in _walk_exception_chain(exc):
        code = getattr(e, "code", None)
        if isinstance(code, str) and code:
            return code
    return None


def wrap_vendor_error(
    exc: BaseException,
    *,
    vendor: str,
    phase: str,
    message: str | None = None,
) -> LlmuxError:
    """Map SDK/httpx exceptions into `VendorAPIError` or `TransportError`."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already mapped; fill in missing context only.
    if isinstance(exc, (VendorAPIError, TransportError)):
        if exc.vendor is None:
            exc.vendor = vendor
        return exc
    if isinstance(exc, LlmuxError):
        return exc

    msg = message or f"{vendor} {phase} failed"
    cause = str(exc)
    status_code = extract_status_code(exc)

    if status_code is None and _is_network_error(exc):
        return TransportError(
            f"{msg}: {cause}" if cause else msg,
            hint="Check network connectivity and the vendor base URL.",
            vendor=vendor,
        )

    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    return VendorAPIError(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_auth_hint(vendor, status_code, cause),
        status_code=status_code,
        vendor=vendor,
        code=_error_code(exc),
    )


def _envelope_fields(body: Any) -> tuple[str | None, str | None]:
    """Return ``(code, message)`` from a parsed vendor error envelope."""
    if not isinstance(body, dict):
        return None, None
    node: Any = body.get("error", body)
    if isinstance(node, str):
        return None, node
    if not isinstance(node, dict):
        return None, None

    code: Any = node.get("code") or node.get("type")
    message: Any = node.get("message")
    return (
        str(code) if code not in (None, "") else None,
        message if isinstance(message, str) and message else None,
    )


def vendor_error_from_body(
    status_code: int,
    body: str,
    *,
    vendor: str,
) -> VendorAPIError:
    """Build a `VendorAPIError` from a non-2xx response body.

    Understands ``{"error": {"type"|"code", "message"}}`` and the flat
    ``{"code", "message"}`` shape; anything else falls back to the raw body.
    """
    try:
        parsed: Any = json.loads(body) if body else None
    except ValueError:
        parsed = None

    code, detail = _envelope_fields(parsed)
    if detail is None:
        detail = body.strip()[:_MAX_BODY_CHARS] or "empty response body"

    label = f"{code}: {detail}" if code else detail
    return VendorAPIError(
        f"{vendor} API error (status={status_code}): {label}",
        hint=_auth_hint(vendor, status_code, detail),
        status_code=status_code,
        vendor=vendor,
        code=code,
    )

"""Small HTTP helpers shared by the raw-HTTP vendor adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from llmux.providers._errors import vendor_error_from_body

if TYPE_CHECKING:
    from llmux.config import VendorConfig

#: Connection setup is short; reads may sit idle while a model thinks.
CONNECT_TIMEOUT_S = 30.0


def build_timeout(timeout_s: float) -> httpx.Timeout:
    """Return the per-request timeout for a vendor client."""
    return httpx.Timeout(timeout_s, connect=min(CONNECT_TIMEOUT_S, timeout_s))


def build_client(
    config: VendorConfig,
    *,
    headers: dict[str, str],
) -> httpx.AsyncClient:
    """Return an authenticated client rooted at the vendor base URL."""
    return httpx.AsyncClient(
        base_url=config.base_url or "",
        headers=headers,
        timeout=build_timeout(config.timeout_s),
    )


async def raise_for_vendor_status(response: httpx.Response, *, vendor: str) -> None:
    """Raise `VendorAPIError` for a non-2xx *response*.

    Works for both buffered and streamed responses; a streamed body is read
    in full before parsing the error envelope.
    """
    if response.is_success:
        return
    body = await response.aread()
    raise vendor_error_from_body(
        response.status_code,
        body.decode("utf-8", errors="replace"),
        vendor=vendor,
    )

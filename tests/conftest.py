"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, and automatic API test
skipping. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from llmux.config import VENDORS, VendorConfig, env_var

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_vendor_env(request, monkeypatch):
    """Ensure a clean vendor environment for each test.

    Clears every ``<VENDOR>_*`` variable to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    prefixes = tuple(env_var(vendor, "") for vendor in VENDORS)
    for key in list(os.environ.keys()):
        if key.startswith(prefixes):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def make_config():
    """Return a factory for test configs with a dummy key and test base URL."""

    def _make(vendor: str, **kwargs) -> VendorConfig:
        kwargs.setdefault("api_key", "test-key")
        kwargs.setdefault("base_url", "https://llm.test/v1")
        return VendorConfig(vendor=vendor, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def vendor_api_key():
    """Return a factory that reads ``<VENDOR>_API_KEY`` or skips the test."""

    def _key(vendor: str) -> str:
        key = os.getenv(env_var(vendor, "API_KEY"))
        if not key:
            pytest.skip(f"{env_var(vendor, 'API_KEY')} not set")
        return key

    return _key

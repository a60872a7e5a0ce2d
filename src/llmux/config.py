"""Configuration: frozen VendorConfig with environment-resolved credentials."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Literal, get_args

from dotenv import load_dotenv

from llmux.errors import ConfigurationError

load_dotenv()

VendorName = Literal[
    "openai",
    "claude",
    "deepseek",
    "groq",
    "cerebras",
    "inception",
    "ai302",
    "openrouter",
    "zai",
]

VENDORS: tuple[str, ...] = get_args(VendorName)

DEFAULT_TIMEOUT_S = 600.0

_DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "claude": "claude-opus-4-20250514",
    "deepseek": "deepseek-chat",
    "groq": "mistral-saba-24b",
    "cerebras": "qwen-3-235b-a22b",
    "inception": "inception-v1",
    "ai302": "ai302-base",
    "openrouter": "openai/gpt-4-turbo-preview",
    "zai": "glm-4.7",
}

#: *None* means the transport's own default endpoint.
_DEFAULT_BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "claude": "https://api.anthropic.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "groq": "https://api.groq.com/openai/v1",
    "cerebras": "https://api.cerebras.ai/v1",
    "inception": "https://api.inceptionlabs.ai/v1",
    "ai302": "https://api.302.ai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "zai": "https://api.z.ai/api/coding/paas/v4",
}


def env_var(vendor: str, suffix: str) -> str:
    """Return the environment variable name for *vendor*, e.g. ``CLAUDE_API_KEY``."""
    return f"{vendor.upper()}_{suffix}"


@dataclass(frozen=True)
class VendorConfig:
    """Immutable connection settings for one vendor.

    Unset fields are resolved from ``<VENDOR>_API_KEY``, ``<VENDOR>_MODEL``
    and ``<VENDOR>_BASE_URL`` (a ``.env`` file is loaded on import), then from
    per-vendor defaults.

    Example:
        config = VendorConfig(vendor="claude")
        # API key is automatically resolved from CLAUDE_API_KEY
    """

    vendor: VendorName
    model: str | None = None
    #: Auto-resolved from ``<VENDOR>_API_KEY`` when *None*.
    api_key: str | None = None
    base_url: str | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S

    def __post_init__(self) -> None:
        """Resolve unset fields from the environment and validate."""
        if self.vendor not in VENDORS:
            raise ConfigurationError(
                f"Unknown vendor: {self.vendor!r}",
                hint=f"Supported vendors: {', '.join(VENDORS)}",
            )

        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This bounds each HTTP request, including stream reads.",
            )

        if self.api_key is None:
            object.__setattr__(
                self, "api_key", os.environ.get(env_var(self.vendor, "API_KEY"))
            )
        if not self.api_key:
            raise ConfigurationError(
                f"API key required for {self.vendor}",
                hint=(
                    f"Set {env_var(self.vendor, 'API_KEY')} environment variable "
                    "or pass api_key=..."
                ),
            )

        if not self.model:
            model = os.environ.get(env_var(self.vendor, "MODEL")) or _DEFAULT_MODELS[
                self.vendor
            ]
            object.__setattr__(self, "model", model)

        if not self.base_url:
            base_url = os.environ.get(env_var(self.vendor, "BASE_URL"))
            object.__setattr__(
                self, "base_url", base_url or _DEFAULT_BASE_URLS[self.vendor]
            )

    @property
    def resolved_model(self) -> str:
        """The model name; always set after construction."""
        return self.model or _DEFAULT_MODELS[self.vendor]

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"VendorConfig(vendor={self.vendor!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r})"
        )

    __repr__ = __str__

"""Provider implementations."""

from .base import Provider, VendorCapabilities
from .claude import ClaudeProvider
from .engine import BaseProvider, TextStream
from .openai import PROFILES, OpenAIProvider
from .zai import ZaiProvider

__all__ = [
    "PROFILES",
    "BaseProvider",
    "ClaudeProvider",
    "OpenAIProvider",
    "Provider",
    "TextStream",
    "VendorCapabilities",
    "ZaiProvider",
]

"""LLM provider package - story generation backends."""

from .anthropic_provider import AnthropicProvider
from .google_provider import GoogleProvider
from .manager import ProviderType, create_narrative_provider
from .provider import LLMProvider

__all__ = [
    "AnthropicProvider",
    "GoogleProvider",
    "LLMProvider",
    "ProviderType",
    "create_narrative_provider",
]

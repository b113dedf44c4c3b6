"""Narrative provider factory driven by Config."""

import logging
from enum import StrEnum
from typing import Optional

from .anthropic_provider import AnthropicProvider
from .google_provider import GoogleProvider
from .provider import LLMProvider

logger = logging.getLogger(__name__)


class ProviderType(StrEnum):
    """Supported narrative providers."""
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


def _resolve_name(requested: Optional[str]) -> str:
    from ..config import Config

    name = (requested or Config.get_primary_provider()).lower()
    if name == "none":
        raise ValueError(
            "No narrative provider configured. Set GOOGLE_API_KEY or ANTHROPIC_API_KEY"
        )
    if name not in (ProviderType.GOOGLE, ProviderType.ANTHROPIC):
        raise ValueError(f"Unknown provider: {name}")
    return name


def create_narrative_provider(
    name: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> LLMProvider:
    """Create the provider that writes scenes.

    Args:
        name: 'google' or 'anthropic'; None resolves from Config.
        api_key: Overrides the configured key.
        model: Overrides STORY_MODEL / the provider default.

    Raises:
        ValueError: No usable provider is configured.
    """
    from ..config import Config

    resolved = _resolve_name(name)
    story_model = model or Config.STORY_MODEL or None

    if resolved == ProviderType.GOOGLE:
        key = api_key or Config.GOOGLE_API_KEY
        if not key:
            raise ValueError("GOOGLE_API_KEY not configured")
        provider = GoogleProvider(api_key=key, default_model=story_model)
    else:
        key = api_key or Config.ANTHROPIC_API_KEY
        if not key:
            raise ValueError("ANTHROPIC_API_KEY not configured")
        provider = AnthropicProvider(api_key=key, default_model=story_model)

    logger.info(f"Narrative provider: {provider.name} ({provider.default_model})")
    return provider

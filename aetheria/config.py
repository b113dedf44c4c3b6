"""Configuration management for Aetheria."""

import os
from pathlib import Path

from dotenv import load_dotenv


# Load environment variables from .env file
def _find_env_file() -> Path | None:
    """Find the .env file, searching up the directory tree."""
    current = Path(__file__).parent
    for _ in range(5):  # Search up to 5 levels
        env_path = current / ".env"
        if env_path.exists():
            return env_path
        current = current.parent
    return None


_env_file = _find_env_file()
if _env_file:
    load_dotenv(_env_file)


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


class Config:
    """Application configuration from environment variables."""

    # Narrative provider selection
    NARRATIVE_PROVIDER: str = os.getenv("NARRATIVE_PROVIDER", "")  # Empty = auto-detect

    # API keys
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")

    # Model overrides (optional)
    STORY_MODEL: str = os.getenv("STORY_MODEL", "")
    IMAGE_MODEL: str = os.getenv("IMAGE_MODEL") or "gemini-3-pro-image-preview"
    IMAGE_FALLBACK_MODEL: str = os.getenv("IMAGE_FALLBACK_MODEL") or "gemini-2.5-flash-image"
    TTS_MODEL: str = os.getenv("TTS_MODEL") or "gemini-2.5-flash-preview-tts"
    TRANSCRIBE_MODEL: str = os.getenv("TRANSCRIBE_MODEL") or "gemini-3-flash-preview"
    WHISPER_SIZE: str = os.getenv("WHISPER_SIZE") or "small"

    # Storage
    DATA_DIR: Path = Path(os.getenv("AETHERIA_DATA_DIR") or Path.home() / ".aetheria")

    # Gameplay tuning
    MAX_LISTEN_SECONDS: float = _float_env("MAX_LISTEN_SECONDS", 4.0)
    HISTORY_WINDOW: int = _int_env("HISTORY_WINDOW", 5)

    # Debug
    LOG_LEVEL: str = os.getenv("LOG_LEVEL") or "INFO"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration, return list of issues."""
        issues = []

        if not any([cls.GOOGLE_API_KEY, cls.ANTHROPIC_API_KEY]):
            issues.append(
                "No API keys configured. "
                "Set GOOGLE_API_KEY (and optionally ANTHROPIC_API_KEY) in .env"
            )

        provider = cls.NARRATIVE_PROVIDER.lower()
        if provider and provider not in ("google", "anthropic"):
            issues.append(f"Unknown NARRATIVE_PROVIDER '{cls.NARRATIVE_PROVIDER}'")

        return issues

    @classmethod
    def get_available_providers(cls) -> list[str]:
        """Get list of providers with configured API keys."""
        providers = []
        if cls.GOOGLE_API_KEY:
            providers.append("google")
        if cls.ANTHROPIC_API_KEY:
            providers.append("anthropic")
        return providers

    @classmethod
    def get_primary_provider(cls) -> str:
        """Get the narrative provider name."""
        if cls.NARRATIVE_PROVIDER:
            return cls.NARRATIVE_PROVIDER.lower()
        # Google doubles as the media provider, so prefer it
        if cls.GOOGLE_API_KEY:
            return "google"
        if cls.ANTHROPIC_API_KEY:
            return "anthropic"
        return "none"

    @classmethod
    def has_cloud_access(cls) -> bool:
        """Default capability probe: cloud media tiers need a Google key."""
        return bool(cls.GOOGLE_API_KEY)

    @classmethod
    def is_debug(cls) -> bool:
        """Check if debug mode is enabled."""
        return cls.DEBUG


# Singleton config instance
config = Config()

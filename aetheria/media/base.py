"""Shared plumbing for the Gemini-backed media tiers."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .failures import CapabilityAbsent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GoogleTier:
    """Lazy google-genai client plus executor dispatch for blocking SDK calls.

    Tiers never hold the client until first use, so constructing a pipeline
    without credentials is cheap and the missing key only surfaces as a
    ``CapabilityAbsent`` failure when the tier is actually attempted.
    """

    cloud = True

    def __init__(self, api_key: str | None = None, client: Any = None):
        """
        Args:
            api_key: Google API key. Falls back to Config.GOOGLE_API_KEY.
            client: Pre-built ``genai.Client`` (tests inject a fake here).
        """
        self._api_key = api_key
        self._client = client

    def _ensure_client(self):
        """Lazy-init the Google GenAI client."""
        if self._client is not None:
            return
        if not self._api_key:
            from ..config import Config
            self._api_key = Config.GOOGLE_API_KEY
        if not self._api_key:
            raise CapabilityAbsent("No Google API key configured")
        try:
            from google import genai
        except ImportError as e:
            raise CapabilityAbsent(f"google-genai is not installed: {e}") from e
        self._client = genai.Client(api_key=self._api_key)

    async def _run(self, fn: Callable[[], T]) -> T:
        """Run a blocking SDK call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)


def first_inline_part(response: Any) -> Any | None:
    """Return the first ``inline_data`` blob in a generate_content response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates or not getattr(candidates[0], "content", None):
        return None
    for part in candidates[0].content.parts or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return inline
    return None

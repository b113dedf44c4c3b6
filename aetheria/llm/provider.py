"""Abstract LLM provider interface for the narrative generator."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    The story engine only needs one capability: a structured completion
    validated against a Pydantic schema. Failures are not retried here; the
    player resubmits, so SDK exceptions propagate unchanged for the caller
    to classify.
    """

    def __init__(self, api_key: str, default_model: Optional[str] = None):
        """Initialize the provider.

        Args:
            api_key: API key for the provider
            default_model: Default model to use
        """
        self.api_key = api_key
        self.default_model = default_model or self.get_default_model()
        self._client = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'google', 'anthropic')."""
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default story model for this provider."""
        pass

    @abstractmethod
    async def complete_with_schema(
        self,
        messages: List[Dict[str, str]],
        schema: Type[M],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.9,
    ) -> M:
        """Generate a structured completion matching a Pydantic schema.

        Args:
            messages: List of messages [{role: str, content: str}]
            schema: Pydantic model class for the output
            system: System prompt
            model: Model to use (defaults to provider default)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            Parsed Pydantic model instance

        Raises:
            ValueError: The response could not be parsed into ``schema``
                (pydantic's ValidationError is a ValueError).
        """
        pass

    async def _run(self, sync_fn: Callable[[], T]) -> T:
        """Run a blocking SDK call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, sync_fn)

    # ── Client lifecycle ─────────────────────────────────────────

    def _ensure_client(self):
        """Ensure the client is initialized (lazy loading)."""
        if self._client is None:
            self._init_client()

    @abstractmethod
    def _init_client(self):
        """Initialize the provider's client."""
        pass


def extract_json(content: str) -> str:
    """Extract JSON from a response, handling markdown code fences."""
    content = content.strip()
    if content.startswith("```"):
        lines = [line for line in content.split("\n") if not line.startswith("```")]
        content = "\n".join(lines).strip()
    return content


def describe_response(data: Any, limit: int = 300) -> str:
    """Short preview of a provider payload for error messages."""
    text = data if isinstance(data, str) else repr(data)
    return text[:limit]

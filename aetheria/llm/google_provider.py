"""Google Gemini LLM provider using the google.genai SDK.

Structured story output uses Gemini's native JSON mode with the scene schema
passed as ``response_json_schema``.
"""

import json
import logging
from typing import Dict, List, Optional, Type

from .provider import LLMProvider, M, describe_response, extract_json

logger = logging.getLogger(__name__)


class GoogleProvider(LLMProvider):
    """Google Gemini provider."""

    @property
    def name(self) -> str:
        return "google"

    def get_default_model(self) -> str:
        return "gemini-3-flash-preview"

    def _init_client(self):
        """Initialize the Google GenAI client."""
        from google import genai
        self._client = genai.Client(api_key=self.api_key)

    async def complete_with_schema(
        self,
        messages: List[Dict[str, str]],
        schema: Type[M],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.9,
    ) -> M:
        """Generate a structured completion matching a Pydantic schema."""
        self._ensure_client()

        model_name = model or self.default_model
        contents = self._build_contents(messages)

        config = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
            "response_mime_type": "application/json",
            "response_json_schema": schema.model_json_schema(),
        }
        if system:
            config["system_instruction"] = system

        # Stream to avoid truncation on long scenes
        def _stream_and_collect():
            stream = self._client.models.generate_content_stream(
                model=model_name,
                contents=contents,
                config=config,
            )
            full_text = ""
            last_chunk = None
            for chunk in stream:
                full_text += chunk.text or ""
                last_chunk = chunk
            return full_text, last_chunk

        full_text, last_chunk = await self._run(_stream_and_collect)

        if last_chunk is not None and getattr(last_chunk, "usage_metadata", None):
            usage = last_chunk.usage_metadata
            logger.debug(
                f"[{self.name}] {model_name}: "
                f"{getattr(usage, 'prompt_token_count', 0)} prompt / "
                f"{getattr(usage, 'candidates_token_count', 0)} output tokens"
            )

        content = extract_json(full_text or "")
        if not content:
            raise ValueError(f"Empty response from {model_name}")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON response: {e}\nResponse: {describe_response(content)}") from e
        return schema.model_validate(data)

    def _build_contents(self, messages: List[Dict[str, str]]) -> str:
        """Build a contents string from chat-style messages."""
        parts = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "user":
                parts.append(content)
            elif role == "assistant":
                parts.append(f"Previous response: {content}")
        return "\n\n".join(parts)

"""Anthropic Claude LLM provider.

Structured output is forced through a single ``respond`` tool whose input
schema is the requested Pydantic model.
"""

import json
import logging
from typing import Dict, List, Optional, Type

from .provider import LLMProvider, M, describe_response, extract_json

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    @property
    def name(self) -> str:
        return "anthropic"

    def get_default_model(self) -> str:
        return "claude-sonnet-4-5"

    def _init_client(self):
        """Initialize the Anthropic client."""
        import anthropic
        self._client = anthropic.Anthropic(api_key=self.api_key)

    async def complete_with_schema(
        self,
        messages: List[Dict[str, str]],
        schema: Type[M],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.9,
    ) -> M:
        """Generate a structured completion using tool use."""
        self._ensure_client()

        model_name = model or self.default_model

        tools = [{
            "name": "respond",
            "description": f"Provide your response as a {schema.__name__}",
            "input_schema": schema.model_json_schema(),
        }]

        kwargs = {
            "model": model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system if system else "",
            "messages": messages,
            "tools": tools,
            "tool_choice": {"type": "tool", "name": "respond"},
        }

        def _stream_and_collect():
            text_content = ""
            with self._client.messages.stream(**kwargs) as stream:
                for text in stream.text_stream:
                    text_content += text
                final_message = stream.get_final_message()
            return text_content, final_message

        text_content, final_message = await self._run(_stream_and_collect)

        if final_message is not None:
            usage = getattr(final_message, "usage", None)
            if usage is not None:
                logger.debug(
                    f"[{self.name}] {model_name}: "
                    f"{usage.input_tokens} prompt / {usage.output_tokens} output tokens"
                )
            for block in final_message.content:
                if getattr(block, "type", None) != "tool_use":
                    continue
                input_data = block.input
                if isinstance(input_data, str):
                    try:
                        input_data = json.loads(input_data)
                    except json.JSONDecodeError as e:
                        raise ValueError(
                            f"Tool input is not JSON: {describe_response(input_data)}"
                        ) from e
                return schema.model_validate(input_data)

        # No tool call: accept a bare JSON answer in the text
        content = extract_json(text_content or "")
        if content:
            try:
                return schema.model_validate(json.loads(content))
            except json.JSONDecodeError as e:
                raise ValueError(f"Failed to parse JSON response: {describe_response(content)}") from e

        raise ValueError("Could not parse structured response from Claude")

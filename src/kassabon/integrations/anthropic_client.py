"""Anthropic API integration used as the model completion backend."""

import logging

from anthropic import AsyncAnthropic
from anthropic.types import CacheControlEphemeralParam, MessageParam, TextBlockParam

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Base exception for model extraction errors."""


class ExtractionRefusedError(ExtractionError):
    """Raised when the model refuses to process the request."""


class AnthropicCompletionClient:
    """
    Completion client backed by Claude.

    Sends a cached system prompt and a user prompt and returns the raw text of
    the reply. The client never retries: a failed call is reported to the
    caller, which falls back to pattern extraction.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5",
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> None:
        """
        Initialize the Anthropic completion client.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-haiku-4-5)
            max_tokens: Maximum tokens for response (default: 2048)
            temperature: Sampling temperature (default: 0.0 for deterministic)
        """
        self.client = AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one prompt pair and return the concatenated text of the reply.

        A reply cut off at ``max_tokens`` is returned as is; the response
        parser repairs truncated JSON.

        Raises:
            ExtractionRefusedError: If the model refuses the request
            ExtractionError: If the reply holds no text
        """
        messages: list[MessageParam] = [{"role": "user", "content": user_prompt}]

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=[
                TextBlockParam(
                    type="text",
                    text=system_prompt,
                    cache_control=CacheControlEphemeralParam(type="ephemeral"),
                )
            ],
            messages=messages,
        )

        if response.stop_reason == "refusal":
            raise ExtractionRefusedError("Model refused to process the request")

        if response.stop_reason == "max_tokens":
            logger.warning("Model reply truncated at %d tokens", self.max_tokens)

        logger.debug(
            "Model usage: %d input, %d output tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text:
            raise ExtractionError("Model reply contained no text")
        return text

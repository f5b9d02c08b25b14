"""
Anthropic Claude client for topic classification and item extraction.

Wraps AsyncAnthropic with rate-limit retries (exponential backoff) and JSON
response parsing. The underlying SDK client is built on first use.
"""

import asyncio
import json
import logging
import os
from typing import Any, Optional

from anthropic import APIError, AsyncAnthropic, RateLimitError as AnthropicRateLimitError

from birdbrain.config_schema import RootConfig
from birdbrain.exceptions import APIKeyError, ProviderError, RateLimitError, ResponseParseError
from birdbrain.utils.text_helpers import strip_code_fences

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class ClaudeClient:
    """Async Claude client with retry logic for rate limits."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Args:
            api_key: Anthropic API key (default: ANTHROPIC_API_KEY env var)
            model: Claude model name
            max_tokens: Maximum tokens per response
            max_retries: Retries after a rate-limit response
            retry_delay: Initial delay between retries (seconds)
        """
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client: Optional[AsyncAnthropic] = None

    @classmethod
    def from_config(cls, config: RootConfig) -> "ClaudeClient":
        return cls(
            api_key=config.api_keys.anthropic_api_key,
            model=config.llm.model,
            max_tokens=config.llm.max_tokens,
            max_retries=config.llm.max_retries,
            retry_delay=config.llm.retry_delay,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise APIKeyError(
                    "ANTHROPIC_API_KEY environment variable is required",
                    details={"provider": "anthropic"},
                )
            self._client = AsyncAnthropic(api_key=self.api_key)
            logger.info(f"Initialized Claude client with model: {self.model}")
        return self._client

    async def analyze_text(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Send a single-turn prompt and return the text of the reply.

        Raises:
            APIKeyError: If no API key is configured
            RateLimitError: If still rate limited after all retries
            ProviderError: On API errors or a reply without text
        """
        client = self.client
        kwargs: dict = {}
        if system:
            kwargs["system"] = system

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(f"Calling Claude API (attempt {attempt + 1}/{self.max_retries + 1})")
                message = await client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": prompt}],
                    **kwargs,
                )
                break

            except AnthropicRateLimitError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2 ** attempt)  # Exponential backoff
                    logger.warning(f"Rate limit hit, retrying in {delay}s... (attempt {attempt + 1})")
                    await asyncio.sleep(delay)
                else:
                    raise RateLimitError(
                        f"Rate limit exceeded after {self.max_retries} retries",
                        cause=e,
                    ) from e

            except APIError as e:
                raise ProviderError(f"Claude API error: {e}", cause=e) from e

        block = message.content[0] if message.content else None
        if block is None or getattr(block, "type", None) != "text":
            raise ProviderError("Unexpected response type from Claude")
        return block.text

    async def analyze_text_as_json(self, prompt: str, system: Optional[str] = None) -> Any:
        """
        Like analyze_text, but parse the reply as JSON (markdown fences allowed).

        Raises:
            ResponseParseError: If the reply is not valid JSON
        """
        response = await self.analyze_text(prompt, system)
        try:
            return json.loads(strip_code_fences(response))
        except json.JSONDecodeError as e:
            raise ResponseParseError(
                "Failed to parse Claude response as JSON",
                details={"response": response[:500]},
                cause=e,
            ) from e

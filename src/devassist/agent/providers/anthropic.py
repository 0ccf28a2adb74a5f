"""
Anthropic Claude Model Tier.

Implements the IModelTier interface for Anthropic's Claude models.
"""

from __future__ import annotations

import logging
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from ..domain.entities import Prompt
from .base import BaseModelTier, ErrorType, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseModelTier):
    """Anthropic Claude model tier.

    Usage:
        config = LLMProviderConfig(
            api_key="sk-ant-...",
            model="claude-sonnet-4-5-20250929",
        )
        tier = AnthropicProvider(config)
        text = await tier.infer(prompt, max_tokens=4096)
    """

    PROVIDER = "anthropic"

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Anthropic tier.

        Args:
            config: Provider configuration
        """
        super().__init__(config)

        self.client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _format_messages_for_api(self, prompt: Prompt) -> list[dict[str, Any]]:
        """Convert messages to Anthropic format.

        Anthropic uses a separate system parameter, and consecutive
        messages with the same role must be merged.
        """
        api_messages: list[dict[str, Any]] = []
        for msg in prompt.messages:
            if api_messages and api_messages[-1]["role"] == msg["role"]:
                api_messages[-1]["content"] += "\n\n" + msg["content"]
            else:
                api_messages.append({"role": msg["role"], "content": msg["content"]})
        return api_messages

    async def _generate(self, prompt: Prompt, max_tokens: int) -> str:
        """Generate a completion using the messages API."""
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(prompt),
            "max_tokens": max_tokens,
            "temperature": self.config.temperature,
        }
        if prompt.system:
            kwargs["system"] = prompt.system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            logger.warning(f"Rate limited by Anthropic: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}", error_type=ErrorType.RATE_LIMIT, original_error=e
            )
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic API timeout: {e}")
            raise LLMProviderError(
                f"Request timed out: {e}", error_type=ErrorType.TIMEOUT, original_error=e
            )
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise LLMProviderError(
                f"API error: {e}", error_type=ErrorType.RECOVERABLE, original_error=e
            )

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def aclose(self) -> None:
        await self.client.close()

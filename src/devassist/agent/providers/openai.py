"""
OpenAI Model Tier.

Implements the IModelTier interface for OpenAI chat models and an
embedding provider for the text-embedding-3 family.
"""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from ..domain.entities import Prompt
from ..domain.ports import IEmbeddingProvider
from .base import BaseModelTier, ErrorType, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)


def _create_client(config: LLMProviderConfig) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )


class OpenAIProvider(BaseModelTier):
    """OpenAI GPT model tier.

    Usage:
        config = LLMProviderConfig(
            api_key="sk-...",
            model="gpt-4o-mini",
        )
        tier = OpenAIProvider(config)
        text = await tier.infer(prompt, max_tokens=1024)
    """

    PROVIDER = "openai"

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI tier.

        Args:
            config: Provider configuration
        """
        super().__init__(config)
        self.client = _create_client(config)

    async def _generate(self, prompt: Prompt, max_tokens: int) -> str:
        """Generate a completion using the chat completions API."""
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(prompt),
            "temperature": self.config.temperature,
            "max_tokens": max_tokens,
        }

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}", error_type=ErrorType.RATE_LIMIT, original_error=e
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise LLMProviderError(
                f"Request timed out: {e}", error_type=ErrorType.TIMEOUT, original_error=e
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise LLMProviderError(
                f"API error: {e}", error_type=ErrorType.RECOVERABLE, original_error=e
            )

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self.client.close()


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embeddings from the OpenAI embeddings API.

    text-embedding-3 models accept a ``dimensions`` argument, so the
    vectors are requested at the index dimension directly.
    """

    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

    def __init__(self, config: LLMProviderConfig):
        self.config = config
        self.embedding_model = config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        self.client = _create_client(config)

    @property
    def model_name(self) -> str:
        return self.embedding_model

    @property
    def dimension(self) -> int:
        return self.config.embedding_dimension

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for text.

        Raises:
            LLMProviderError: On API errors
        """
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
                dimensions=self.dimension,
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during embedding: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                original_error=e,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise LLMProviderError(
                f"Embedding failed: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

        return list(response.data[0].embedding)

    async def aclose(self) -> None:
        await self.client.close()

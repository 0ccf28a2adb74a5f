"""
Ollama Model Tier.

Implements the IModelTier interface for Ollama's local LLM API, plus an
embedding provider for locally-hosted embedding models.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..domain.entities import Prompt
from ..domain.ports import IEmbeddingProvider
from .base import BaseModelTier, ErrorType, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)


def _wrap_http_error(e: Exception, what: str) -> LLMProviderError:
    """Translate httpx failures into LLMProviderError."""
    if isinstance(e, httpx.HTTPStatusError):
        return LLMProviderError(
            f"Ollama {what} API error: {e.response.status_code} - {e.response.text}",
            error_type=ErrorType.RECOVERABLE,
            original_error=e,
        )
    if isinstance(e, httpx.TimeoutException):
        return LLMProviderError(
            f"Ollama {what} timeout: {e}",
            error_type=ErrorType.TIMEOUT,
            original_error=e,
        )
    if isinstance(e, httpx.RequestError):
        return LLMProviderError(
            f"Ollama connection error: {e}",
            error_type=ErrorType.FATAL,
            original_error=e,
        )
    return LLMProviderError(
        f"Unexpected error in Ollama {what}: {e}",
        error_type=ErrorType.FATAL,
        original_error=e,
    )


class OllamaProvider(BaseModelTier):
    """Ollama local model tier.

    Usually configured as the lowest-cost tier: always available when
    the local daemon is up, lower quality than hosted models.

    Usage:
        config = LLMProviderConfig(
            api_key="not-needed",  # Ollama doesn't require auth
            model="llama3.3",
            base_url="http://localhost:11434",
        )
        tier = OllamaProvider(config)
        text = await tier.infer(prompt, max_tokens=512)
    """

    PROVIDER = "ollama"

    # Default configuration
    DEFAULT_MODEL = "llama3.3"
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(self, config: LLMProviderConfig, client: Optional[httpx.AsyncClient] = None):
        """Initialize the Ollama tier.

        Args:
            config: Provider configuration
            client: Optional shared HTTP client
        """
        super().__init__(config)

        self.base_url = config.base_url or self.DEFAULT_BASE_URL
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
        )

    async def _generate(self, prompt: Prompt, max_tokens: int) -> str:
        """Generate a completion using Ollama's chat endpoint."""
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(prompt),
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": max_tokens,
            },
        }

        try:
            response = await self.client.post("/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            error = _wrap_http_error(e, "chat")
            logger.error(str(error))
            raise error

        message = data.get("message") or {}
        return message.get("content", "")

    async def aclose(self) -> None:
        """Cleanup client."""
        await self.client.aclose()


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embeddings from a locally-hosted Ollama model.

    ``nomic-embed-text`` produces 768-dimension vectors, matching the
    documentation index.
    """

    DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"

    def __init__(self, config: LLMProviderConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.base_url = config.base_url or OllamaProvider.DEFAULT_BASE_URL
        self.embedding_model = config.embedding_model or self.DEFAULT_EMBEDDING_MODEL
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
        )

    @property
    def model_name(self) -> str:
        return self.embedding_model

    @property
    def dimension(self) -> int:
        return self.config.embedding_dimension

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding using Ollama.

        Raises:
            LLMProviderError: If embedding generation fails
        """
        try:
            response = await self.client.post(
                "/api/embeddings",
                json={
                    "model": self.embedding_model,
                    "prompt": text,
                },
            )
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            raise _wrap_http_error(e, "embedding")

        embedding = data.get("embedding", [])
        if not embedding:
            raise LLMProviderError(
                "No embedding returned from Ollama",
                error_type=ErrorType.RECOVERABLE,
            )
        if len(embedding) != self.dimension:
            raise LLMProviderError(
                f"Expected {self.dimension}-dimension embedding, got {len(embedding)}",
                error_type=ErrorType.FATAL,
            )
        return embedding

    async def aclose(self) -> None:
        await self.client.aclose()

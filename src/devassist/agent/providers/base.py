"""
Base Model Tier Implementation.

Provides common functionality for all model tiers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..domain.entities import Prompt
from ..domain.ports import IModelTier

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Classification of provider failures."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


@dataclass
class LLMProviderConfig:
    """Configuration for a model tier.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        tier_id: Provenance identifier (defaults to "<provider>:<model>")
        embedding_model: Model for embeddings (if different)
        embedding_dimension: Requested embedding size
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: SDK-level retry attempts
        temperature: Sampling temperature
        max_tokens: Default max tokens
    """

    api_key: str
    model: str
    tier_id: Optional[str] = None
    embedding_model: Optional[str] = None
    embedding_dimension: int = 768
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 1
    temperature: float = 0.3
    max_tokens: int = 1024
    extra: dict[str, Any] = field(default_factory=dict)


class BaseModelTier(IModelTier, ABC):
    """Base class for model tier implementations.

    Subclasses implement ``_generate`` for a specific API. ``infer``
    rejects empty output so the cascade can treat it as a tier failure.
    """

    PROVIDER = "base"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the tier.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    @property
    def tier_id(self) -> str:
        return self.config.tier_id or f"{self.PROVIDER}:{self.config.model}"

    async def infer(self, prompt: Prompt, max_tokens: int) -> str:
        """Generate text, raising LLMProviderError on empty output."""
        text = await self._generate(prompt, max_tokens)
        if not text or not text.strip():
            raise LLMProviderError(
                f"{self.tier_id} returned an empty completion",
                error_type=ErrorType.RECOVERABLE,
            )
        return text

    @abstractmethod
    async def _generate(self, prompt: Prompt, max_tokens: int) -> str:
        """Call the backend. Must be implemented by subclasses."""
        pass

    def _format_messages_for_api(self, prompt: Prompt) -> list[dict[str, Any]]:
        """Convert a prompt to an OpenAI-style message list.

        Subclasses may override for provider-specific formatting.
        """
        api_messages: list[dict[str, Any]] = []
        if prompt.system:
            api_messages.append({"role": "system", "content": prompt.system})
        for msg in prompt.messages:
            api_messages.append({"role": msg["role"], "content": msg["content"]})
        return api_messages

    async def aclose(self) -> None:
        """Release client resources."""
        pass

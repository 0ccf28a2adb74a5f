"""Model tier and embedding provider implementations."""

from .base import BaseModelTier, ErrorType, LLMProviderConfig, LLMProviderError
from .anthropic import AnthropicProvider
from .openai import OpenAIEmbeddingProvider, OpenAIProvider
from .ollama import OllamaEmbeddingProvider, OllamaProvider
from .cascade import ModelCascade
from .circuit import CircuitState, TierCircuit

__all__ = [
    "BaseModelTier",
    "ErrorType",
    "LLMProviderConfig",
    "LLMProviderError",
    "AnthropicProvider",
    "OpenAIProvider",
    "OpenAIEmbeddingProvider",
    "OllamaProvider",
    "OllamaEmbeddingProvider",
    "ModelCascade",
    "CircuitState",
    "TierCircuit",
]

"""
Developer Assistant Agent Module.

Answers questions about a platform's APIs and generates multi-file code,
using retrieval over a documentation corpus and a tiered LLM backend.

Architecture:
- Domain: Core entities, error taxonomy and port interfaces
- Providers: Model tiers (Claude, GPT, Ollama), embeddings, fallback cascade
- Memory: Conversation and project-state persistence (PostgreSQL)
- Retrieval: Documentation index (pgvector)
- Orchestrator: Turn state machine, context assembly, parsing, session actors
- API: FastAPI router with WebSocket streaming and a REST fallback

Key Features:
- Concurrent retrieval and history fetch per turn
- Size-bounded prompt context
- Tiered model fallback with a degraded last-resort prompt
- Fenced code extraction into ordered, optionally named artifacts
- One turn at a time per session, sessions in parallel
- Idempotent turn persistence keyed by turn id
"""

# Domain entities
from .domain.entities import (
    CodeArtifact,
    Message,
    MessageRole,
    ModelResponse,
    ProjectState,
    Prompt,
    RetrievalResult,
    TurnEvent,
    TurnEventType,
    TurnRequest,
    TurnState,
    TurnType,
)
from .domain.errors import AgentError, ErrorKind

# Orchestrator
from .orchestrator import (
    AgentConfig,
    AgentOrchestrator,
    ContextAssembler,
    ResponseParser,
    SessionRegistry,
)

# Memory and retrieval
from .memory import ConversationStore
from .retrieval import PgVectorDocumentIndex

# Providers
from .providers import (
    AnthropicProvider,
    LLMProviderConfig,
    ModelCascade,
    OllamaEmbeddingProvider,
    OllamaProvider,
    OpenAIEmbeddingProvider,
    OpenAIProvider,
)

__all__ = [
    # Domain
    "CodeArtifact",
    "Message",
    "MessageRole",
    "ModelResponse",
    "ProjectState",
    "Prompt",
    "RetrievalResult",
    "TurnEvent",
    "TurnEventType",
    "TurnRequest",
    "TurnState",
    "TurnType",
    "AgentError",
    "ErrorKind",
    # Orchestrator
    "AgentConfig",
    "AgentOrchestrator",
    "ContextAssembler",
    "ResponseParser",
    "SessionRegistry",
    # Memory and retrieval
    "ConversationStore",
    "PgVectorDocumentIndex",
    # Providers
    "AnthropicProvider",
    "LLMProviderConfig",
    "ModelCascade",
    "OllamaEmbeddingProvider",
    "OllamaProvider",
    "OpenAIEmbeddingProvider",
    "OpenAIProvider",
]

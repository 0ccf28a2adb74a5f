"""Domain entities, errors and port interfaces for the agent module."""

from .entities import (
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
from .errors import (
    AgentError,
    ErrorKind,
    HistoryUnavailable,
    InternalError,
    ModelUnavailable,
    ParseRecovered,
    PersistenceFailure,
    RetrievalDegraded,
    SessionBusy,
    TierUnavailable,
    TurnValidationError,
)
from .ports import (
    IConversationStore,
    IEmbeddingProvider,
    IModelTier,
    IRetriever,
)

__all__ = [
    # Entities
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
    # Errors
    "AgentError",
    "ErrorKind",
    "HistoryUnavailable",
    "InternalError",
    "ModelUnavailable",
    "ParseRecovered",
    "PersistenceFailure",
    "RetrievalDegraded",
    "SessionBusy",
    "TierUnavailable",
    "TurnValidationError",
    # Ports
    "IConversationStore",
    "IEmbeddingProvider",
    "IModelTier",
    "IRetriever",
]

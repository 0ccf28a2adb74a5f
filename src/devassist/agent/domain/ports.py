"""
Port interfaces (abstract base classes) for the agent module.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .entities import Message, ProjectState, Prompt, RetrievalResult


# ============================================
# Model Tier Interface
# ============================================


class IModelTier(ABC):
    """Interface for one interchangeable model backend.

    Implementations handle the specifics of each LLM API while
    providing a consistent interface to the fallback cascade.
    """

    @property
    @abstractmethod
    def tier_id(self) -> str:
        """Return the tier identifier recorded as provenance."""
        pass

    @abstractmethod
    async def infer(self, prompt: Prompt, max_tokens: int) -> str:
        """Generate text for the prompt.

        Args:
            prompt: Structured prompt
            max_tokens: Maximum tokens to generate

        Returns:
            Generated text

        Raises:
            LLMProviderError: If the backend call fails
        """
        pass


# ============================================
# Embedding Provider Interface
# ============================================


class IEmbeddingProvider(ABC):
    """Interface for embedding providers.

    Separate from IModelTier so embeddings can come from a different
    backend than generation.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the embedding model name."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for the given text."""
        pass


# ============================================
# Retrieval Interface
# ============================================


class IRetriever(ABC):
    """Interface for the documentation vector index."""

    @abstractmethod
    async def retrieve(self, vector: list[float], k: int) -> list[RetrievalResult]:
        """Return the top-k documents ordered by descending score."""
        pass


# ============================================
# Conversation Store Interface
# ============================================


class IConversationStore(ABC):
    """Interface for session persistence.

    Messages are append-only and ordered by (created_at, id). Each
    session has at most one ProjectState.
    """

    @abstractmethod
    async def append(
        self,
        session_id: str,
        user_message: Message,
        assistant_message: Message,
        turn_id: Optional[str] = None,
    ) -> bool:
        """Append a user/assistant message pair atomically.

        When ``turn_id`` is given, a replayed append for the same turn
        must not duplicate the pair.

        Returns:
            True if the pair was written, False if it already existed
        """
        pass

    @abstractmethod
    async def read_history(self, session_id: str, limit: int) -> list[Message]:
        """Return at most ``limit`` newest messages, oldest first."""
        pass

    @abstractmethod
    async def read_project_state(self, session_id: str) -> Optional[ProjectState]:
        """Return the session's project state, or None if never written."""
        pass

    @abstractmethod
    async def write_project_state(self, session_id: str, state: ProjectState) -> None:
        """Overwrite the session's project state."""
        pass

    async def persist_turn(
        self,
        session_id: str,
        turn_id: str,
        user_message: Message,
        assistant_message: Message,
        project_state: Optional[ProjectState] = None,
    ) -> bool:
        """Persist everything a completed turn produced.

        A replayed turn writes nothing, including the project state.
        Stores with transactions should override this so the message
        pair and the project state land together or not at all.
        """
        written = await self.append(
            session_id, user_message, assistant_message, turn_id=turn_id
        )
        if written and project_state is not None:
            await self.write_project_state(session_id, project_state)
        return written

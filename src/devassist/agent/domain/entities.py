"""
Domain entities for the developer assistant.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures used throughout the agent module.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a session."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """A single message in a session.

    Messages are append-only. Ordering within a session is by
    ``created_at`` and then ``id``.

    Attributes:
        role: Message role (user or assistant)
        content: Message text content
        session_id: Owning session
        id: Unique message identifier
        turn_id: Turn that produced this message (deduplication key)
        model_used: Tier that generated this message (assistant only)
        tokens_used: Token budget granted to the generating call
        created_at: Creation timestamp
    """

    role: MessageRole
    content: str
    session_id: Optional[str] = None
    id: Optional[uuid.UUID] = None
    turn_id: Optional[str] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()
        if self.created_at is None:
            self.created_at = utcnow()

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Chronological ordering key (created_at, then id)."""
        return (self.created_at, str(self.id))


# ============================================
# Project State
# ============================================


@dataclass
class ProjectState:
    """Singleton per-session record of generated files.

    ``files`` is an insertion-ordered mapping of path -> content. A
    regenerated path replaces its previous content in place.

    Attributes:
        files: Ordered mapping of file path to file content
        last_generated_at: When the last code-generation turn completed
        metadata: Opaque key-value data (tier used, turn id, counts)
    """

    files: dict[str, str] = field(default_factory=dict)
    last_generated_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def merged_with(
        self,
        artifacts: list[CodeArtifact],
        generated_at: Optional[datetime] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ProjectState:
        """Return a new state with named artifacts merged in by path.

        Artifacts without a filename cannot be keyed and are left out.
        """
        files = dict(self.files)
        for artifact in sorted(artifacts, key=lambda a: a.order_index):
            if artifact.filename:
                files[artifact.filename] = artifact.content
        return ProjectState(
            files=files,
            last_generated_at=generated_at or utcnow(),
            metadata=dict(metadata) if metadata is not None else dict(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "files": dict(self.files),
            "last_generated_at": (
                self.last_generated_at.isoformat() if self.last_generated_at else None
            ),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectState:
        """Rebuild a state from its serialized form."""
        last = data.get("last_generated_at")
        return cls(
            files=dict(data.get("files") or {}),
            last_generated_at=datetime.fromisoformat(last) if last else None,
            metadata=dict(data.get("metadata") or {}),
        )


# ============================================
# Retrieval
# ============================================


@dataclass(frozen=True)
class RetrievalResult:
    """A documentation snippet returned by the vector index."""

    title: str
    content: str
    url: str
    score: float


# ============================================
# Prompts
# ============================================


@dataclass
class Prompt:
    """Structured prompt handed to a model tier.

    Attributes:
        system: System instructions (including the assembled context)
        messages: Chat turns as ``{"role": ..., "content": ...}`` dicts,
            oldest first, ending with the current user message
    """

    system: str
    messages: list[dict[str, str]] = field(default_factory=list)

    def flatten(self) -> str:
        """Collapse the prompt into a single instruction string."""
        parts = []
        if self.system:
            parts.append(self.system.strip())
        if self.messages:
            transcript = "\n".join(
                f"{m['role'].capitalize()}: {m['content']}" for m in self.messages
            )
            parts.append(f"Conversation:\n{transcript}")
        parts.append("Answer the last user message.")
        return "\n\n".join(parts)

    @classmethod
    def flat(cls, text: str) -> Prompt:
        """Build a prompt that is a single user instruction."""
        return cls(system="", messages=[{"role": "user", "content": text}])


# ============================================
# Model Output
# ============================================


@dataclass(frozen=True)
class ModelResponse:
    """Generated text plus provenance.

    Attributes:
        text: Generated text
        model_id: Identifier of the tier that produced the text
        token_budget_used: Max token budget granted to the call
        degraded: True if produced by the flattened-prompt last resort
    """

    text: str
    model_id: str
    token_budget_used: int
    degraded: bool = False


@dataclass
class CodeArtifact:
    """A fenced code block extracted from generated text.

    Attributes:
        content: Code inside the fence
        order_index: Position of first appearance among all blocks
        filename: File path from an annotation, never invented
        language: Language tag from the opening fence
    """

    content: str
    order_index: int
    filename: Optional[str] = None
    language: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format."""
        return {
            "filename": self.filename,
            "language": self.language,
            "content": self.content,
            "orderIndex": self.order_index,
        }


# ============================================
# Turns
# ============================================


class TurnType(str, Enum):
    """Kind of inbound turn."""

    CHAT = "chat"
    GENERATE = "generate"


class TurnState(str, Enum):
    """Orchestrator turn states."""

    RECEIVED = "received"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    PARSING = "parsing"
    PERSISTING = "persisting"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.DELIVERED, TurnState.FAILED)


@dataclass(frozen=True)
class TurnRequest:
    """An inbound turn, already shape-checked at the transport edge.

    Attributes:
        type: chat or generate
        session_id: Session the turn belongs to
        text: User text
        turn_id: Deduplication key for persistence (generated if absent)
        tier: Optional preferred model tier
    """

    type: TurnType
    session_id: str
    text: str
    turn_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    tier: Optional[str] = None


# ============================================
# Streaming Events
# ============================================


class TurnEventType(str, Enum):
    """Types of events emitted on the channel."""

    PROGRESS = "progress"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class TurnEvent:
    """An event emitted for a turn.

    Progress events are advisory. Every turn ends with exactly one
    DELIVERED or FAILED event.

    Attributes:
        type: Event type
        sequence: Sequence number for ordering within the turn
        turn_id: Turn this event belongs to
        session_id: Session this event belongs to
        stage: Stage name (progress events)
        text: Assistant text (terminal events)
        artifacts: Extracted code artifacts (terminal events)
        narrative: Prose segments around the artifacts (DELIVERED)
        model_used: Tier that produced the text
        error: User-safe error message (FAILED)
        error_kind: Error taxonomy name (FAILED)
    """

    type: TurnEventType
    sequence: int
    turn_id: Optional[str] = None
    session_id: Optional[str] = None
    stage: Optional[str] = None
    text: str = ""
    artifacts: list[CodeArtifact] = field(default_factory=list)
    narrative: list[str] = field(default_factory=list)
    model_used: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (TurnEventType.DELIVERED, TurnEventType.FAILED)

    @property
    def status(self) -> str:
        return "error" if self.type == TurnEventType.FAILED else "ok"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        if self.type == TurnEventType.PROGRESS:
            return {
                "type": self.type.value,
                "stage": self.stage,
                "sequence": self.sequence,
                "turnId": self.turn_id,
            }

        result: dict[str, Any] = {
            "type": self.type.value,
            "status": self.status,
            "text": self.text,
            "artifacts": [a.to_dict() for a in self.artifacts],
            "narrative": list(self.narrative),
            "modelUsed": self.model_used,
            "sequence": self.sequence,
            "turnId": self.turn_id,
            "sessionId": self.session_id,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.error_kind is not None:
            result["kind"] = self.error_kind
        return result

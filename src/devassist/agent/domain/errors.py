"""
Error taxonomy for turn processing.

Exception Hierarchy:
    AgentError (base)
    ├── RetrievalDegraded   (absorbed - empty documentation section)
    ├── TierUnavailable     (absorbed while tiers remain)
    ├── ParseRecovered      (logged quality signal, never raised to callers)
    ├── ModelUnavailable    (fatal - every tier and the degraded attempt failed)
    ├── HistoryUnavailable  (fatal - history read failed)
    ├── PersistenceFailure  (fatal - generated but not saved)
    ├── TurnValidationError (fatal - malformed inbound request)
    ├── SessionBusy         (fatal - session mailbox full)
    └── InternalError       (fatal - anything unforeseen)

Fatal errors carry a fixed user-safe message. The detailed cause is
chained for logging and never sent to clients.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Taxonomy names as they appear in terminal payloads."""

    RETRIEVAL_DEGRADED = "RetrievalDegraded"
    TIER_UNAVAILABLE = "TierUnavailable"
    PARSE_RECOVERED = "ParseRecovered"
    MODEL_UNAVAILABLE = "ModelUnavailable"
    HISTORY_UNAVAILABLE = "HistoryUnavailable"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    VALIDATION_ERROR = "ValidationError"
    SESSION_BUSY = "SessionBusy"
    INTERNAL_ERROR = "InternalError"


class AgentError(Exception):
    """Base exception for turn-processing errors.

    Attributes:
        message: Detailed description (for logs)
        kind: Taxonomy name
        cause: The original exception, also chained as __cause__
        recoverable: Whether the turn can continue after this error
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    recoverable: bool = False
    user_message: str = "Something went wrong while processing your message."

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class RetrievalDegraded(AgentError):
    """Embedding or retrieval failed; context proceeds without docs."""

    kind = ErrorKind.RETRIEVAL_DEGRADED
    recoverable = True


class TierUnavailable(AgentError):
    """A single model tier failed or returned an empty result."""

    kind = ErrorKind.TIER_UNAVAILABLE
    recoverable = True

    def __init__(self, tier_id: str, message: str, cause: Optional[Exception] = None):
        super().__init__(f"[{tier_id}] {message}", cause)
        self.tier_id = tier_id


class ParseRecovered(AgentError):
    """A malformed or truncated fence was closed best-effort."""

    kind = ErrorKind.PARSE_RECOVERED
    recoverable = True


class ModelUnavailable(AgentError):
    """Every tier, including the degraded-prompt attempt, failed."""

    kind = ErrorKind.MODEL_UNAVAILABLE
    user_message = "The assistant model is currently unavailable. Please try again shortly."

    def __init__(
        self,
        message: str,
        attempts: Optional[list[TierUnavailable]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.attempts = attempts or []


class HistoryUnavailable(AgentError):
    """Conversation history could not be read."""

    kind = ErrorKind.HISTORY_UNAVAILABLE
    user_message = "Conversation history could not be loaded. Please retry."


class PersistenceFailure(AgentError):
    """The exchange was generated but could not be saved."""

    kind = ErrorKind.PERSISTENCE_FAILURE
    user_message = "Your message was answered but could not be saved. Please retry."


class TurnValidationError(AgentError):
    """Malformed inbound turn request."""

    kind = ErrorKind.VALIDATION_ERROR
    user_message = "Invalid request: a session id and non-empty text are required."

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message, cause)
        self.user_message = f"Invalid request: {message}"


class SessionBusy(AgentError):
    """The session mailbox is full."""

    kind = ErrorKind.SESSION_BUSY
    user_message = "Too many pending messages for this session. Please wait and retry."


class InternalError(AgentError):
    """Unexpected failure inside the orchestrator."""

    kind = ErrorKind.INTERNAL_ERROR

"""Persistence for session messages and project state."""

from .conversation import ConversationStore, IAsyncDBPool

__all__ = [
    "ConversationStore",
    "IAsyncDBPool",
]

"""
Conversation Store Implementation.

Handles message and project-state persistence per session.
Uses PostgreSQL via asyncpg; see db/schema.sql for the tables.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from ..domain.entities import Message, MessageRole, ProjectState
from ..domain.ports import IConversationStore

logger = logging.getLogger(__name__)


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...
    async def fetchval(self, query: str, *args) -> Any: ...


_INSERT_MESSAGE = """
    INSERT INTO messages (
        id, session_id, turn_id, role, content, model_used, tokens_used, created_at
    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
    ON CONFLICT (session_id, turn_id, role) DO NOTHING
    RETURNING id
"""

_UPSERT_PROJECT_STATE = """
    INSERT INTO project_state (session_id, state, updated_at)
    VALUES ($1, $2::jsonb, NOW())
    ON CONFLICT (session_id)
    DO UPDATE SET state = EXCLUDED.state, updated_at = EXCLUDED.updated_at
"""


class ConversationStore(IConversationStore):
    """PostgreSQL-based conversation store.

    Messages are append-only rows in ``messages``; each session has at
    most one ``project_state`` row holding a JSON blob. A turn id makes
    the message-pair write idempotent: replaying it inserts nothing.

    Usage:
        store = ConversationStore(db_pool)

        await store.append(
            "session-1",
            Message(role=MessageRole.USER, content="How do I read a key?"),
            Message(role=MessageRole.ASSISTANT, content="Use get()."),
            turn_id="turn-1",
        )

        history = await store.read_history("session-1", limit=6)
    """

    def __init__(self, db_pool: IAsyncDBPool):
        """Initialize the conversation store.

        Args:
            db_pool: Async database connection pool
        """
        self.db = db_pool

    async def _insert_pair(
        self,
        conn,
        session_id: str,
        user_message: Message,
        assistant_message: Message,
        turn_id: Optional[str],
    ) -> bool:
        """Insert both messages on an open transaction."""
        written = False
        for message in (user_message, assistant_message):
            message.session_id = session_id
            message.turn_id = turn_id
            row_id = await conn.fetchval(
                _INSERT_MESSAGE,
                message.id,
                session_id,
                turn_id,
                message.role.value,
                message.content,
                message.model_used,
                message.tokens_used,
                message.created_at,
            )
            written = written or row_id is not None
        return written

    async def append(
        self,
        session_id: str,
        user_message: Message,
        assistant_message: Message,
        turn_id: Optional[str] = None,
    ) -> bool:
        """Append a user/assistant pair in one transaction.

        Returns:
            True if written, False if this turn was already stored
        """
        async with self.db.acquire() as conn:
            async with conn.transaction():
                written = await self._insert_pair(
                    conn, session_id, user_message, assistant_message, turn_id
                )

        if written:
            logger.debug(f"Appended message pair to session {session_id} (turn {turn_id})")
        else:
            logger.info(f"Turn {turn_id} already stored for session {session_id}, skipped")
        return written

    async def read_history(self, session_id: str, limit: int) -> list[Message]:
        """Get the newest ``limit`` messages, oldest first.

        Args:
            session_id: Session identifier
            limit: Maximum messages to return

        Returns:
            List of messages in chronological order
        """
        if limit <= 0:
            return []

        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id, session_id, turn_id, role, content,
                       model_used, tokens_used, created_at
                FROM messages
                WHERE session_id = $1
                ORDER BY created_at DESC, id DESC
                LIMIT $2
                """,
                session_id,
                limit,
            )

        # Reverse to get chronological order
        return [
            Message(
                id=row["id"],
                session_id=row["session_id"],
                turn_id=row["turn_id"],
                role=MessageRole(row["role"]),
                content=row["content"],
                model_used=row["model_used"],
                tokens_used=row["tokens_used"],
                created_at=row["created_at"],
            )
            for row in reversed(rows)
        ]

    async def read_project_state(self, session_id: str) -> Optional[ProjectState]:
        """Get the session's project state, if any."""
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT state FROM project_state WHERE session_id = $1",
                session_id,
            )

        if not row:
            return None

        state = row["state"]
        if isinstance(state, str):
            state = json.loads(state)
        return ProjectState.from_dict(state)

    async def write_project_state(self, session_id: str, state: ProjectState) -> None:
        """Overwrite the session's project state."""
        async with self.db.acquire() as conn:
            await conn.execute(
                _UPSERT_PROJECT_STATE,
                session_id,
                json.dumps(state.to_dict()),
            )

        logger.debug(
            f"Wrote project state for session {session_id} ({len(state.files)} files)"
        )

    async def persist_turn(
        self,
        session_id: str,
        turn_id: str,
        user_message: Message,
        assistant_message: Message,
        project_state: Optional[ProjectState] = None,
    ) -> bool:
        """Write the message pair and project state in one transaction.

        A replayed turn writes nothing, including the project state.
        """
        async with self.db.acquire() as conn:
            async with conn.transaction():
                written = await self._insert_pair(
                    conn, session_id, user_message, assistant_message, turn_id
                )
                if written and project_state is not None:
                    await conn.execute(
                        _UPSERT_PROJECT_STATE,
                        session_id,
                        json.dumps(project_state.to_dict()),
                    )

        if not written:
            logger.info(f"Turn {turn_id} already stored for session {session_id}, skipped")
        return written

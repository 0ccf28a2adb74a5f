"""
In-memory fakes for the collaborator ports.
"""

import asyncio

from src.devassist.agent.domain.ports import (
    IConversationStore,
    IEmbeddingProvider,
    IModelTier,
    IRetriever,
)


class ScriptedTier(IModelTier):
    """Model tier returning scripted outcomes (str = text, Exception = raise)."""

    def __init__(self, tier_id, *outcomes, delay=0.0):
        self._tier_id = tier_id
        self.outcomes = list(outcomes) or ["ok"]
        self.delay = delay
        self.calls = []

    @property
    def tier_id(self):
        return self._tier_id

    async def infer(self, prompt, max_tokens):
        self.calls.append((prompt, max_tokens))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeEmbedder(IEmbeddingProvider):
    """Embedder returning a constant vector, or raising."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    @property
    def model_name(self):
        return "fake-embed"

    @property
    def dimension(self):
        return 768

    async def embed(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return [0.1] * 768


class FakeRetriever(IRetriever):
    """Retriever returning fixed documents."""

    def __init__(self, documents=None, error=None):
        self.documents = documents or []
        self.error = error
        self.calls = []

    async def retrieve(self, vector, k):
        self.calls.append(k)
        if self.error:
            raise self.error
        return self.documents[:k]


class InMemoryStore(IConversationStore):
    """Conversation store in memory, deduplicating by (session, turn, role)."""

    def __init__(self):
        self.messages = {}
        self.projects = {}
        self.history_error = None
        self.persist_error = None
        self.persist_calls = 0
        self.log = []

    async def append(self, session_id, user_message, assistant_message, turn_id=None):
        session = self.messages.setdefault(session_id, [])
        keys = {(m.turn_id, m.role) for m in session if m.turn_id is not None}
        written = False
        for message in (user_message, assistant_message):
            message.session_id = session_id
            message.turn_id = turn_id
            if turn_id is not None and (turn_id, message.role) in keys:
                continue
            session.append(message)
            written = True
        return written

    async def read_history(self, session_id, limit):
        if self.history_error:
            raise self.history_error
        self.log.append(("read", session_id))
        ordered = sorted(self.messages.get(session_id, []), key=lambda m: m.sort_key)
        return ordered[-limit:] if limit > 0 else []

    async def read_project_state(self, session_id):
        if self.history_error:
            raise self.history_error
        return self.projects.get(session_id)

    async def write_project_state(self, session_id, state):
        self.projects[session_id] = state

    async def persist_turn(
        self, session_id, turn_id, user_message, assistant_message, project_state=None
    ):
        self.persist_calls += 1
        if self.persist_error:
            raise self.persist_error
        written = await self.append(session_id, user_message, assistant_message, turn_id=turn_id)
        if written and project_state is not None:
            await self.write_project_state(session_id, project_state)
        self.log.append(("persist", session_id, turn_id))
        return written

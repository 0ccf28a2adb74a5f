"""
Tests for AgentOrchestrator turn processing.

End-to-end through the state machine with in-memory collaborators:
delivery scenarios, fallback, degraded retrieval, fatal failures and
idempotent persistence.
"""

import pytest
from unittest.mock import MagicMock

from fakes import FakeEmbedder, FakeRetriever, InMemoryStore, ScriptedTier

from src.devassist.agent.domain.entities import (
    MessageRole,
    RetrievalResult,
    TurnEventType,
    TurnRequest,
    TurnType,
)
from src.devassist.agent.domain.ports import IConversationStore
from src.devassist.agent.orchestrator.agent import AgentConfig, AgentOrchestrator
from src.devassist.agent.providers.cascade import ModelCascade

DOCS = [
    RetrievalResult(
        title="KV get", content="get(key) returns the value.", url="https://docs/kv/get", score=0.9
    ),
    RetrievalResult(
        title="KV put", content="put(key, value) stores a value.", url="https://docs/kv/put", score=0.8
    ),
]

TWO_FILES = (
    "Here is the project.\n\n"
    "**a.ts**\n```ts\nexport const a = 1;\n```\n\n"
    "**b.ts**\n```ts\nexport const b = 2;\n```\n"
)


def make_orchestrator(store, tiers=None, embedder=None, retriever=None, **kwargs):
    return AgentOrchestrator(
        session_id="s1",
        cascade=ModelCascade(tiers or [ScriptedTier("tier1", "answer")]),
        embedder=embedder or FakeEmbedder(),
        retriever=retriever or FakeRetriever(DOCS),
        store=store,
        **kwargs,
    )


async def run(orchestrator, request):
    return [event async for event in orchestrator.run_turn(request)]


def chat(text, turn_id=None, session_id="s1"):
    if turn_id:
        return TurnRequest(type=TurnType.CHAT, session_id=session_id, text=text, turn_id=turn_id)
    return TurnRequest(type=TurnType.CHAT, session_id=session_id, text=text)


def generate(text, turn_id=None):
    if turn_id:
        return TurnRequest(type=TurnType.GENERATE, session_id="s1", text=text, turn_id=turn_id)
    return TurnRequest(type=TurnType.GENERATE, session_id="s1", text=text)


class TestDelivery:
    """Successful turns."""

    @pytest.mark.asyncio
    async def test_chat_without_history(self, store):
        """Fresh session chat: ok, no artifacts, tier1 used."""
        tier1 = ScriptedTier("tier1", "A key-value lookup fetches a value by its key.")
        retriever = FakeRetriever(DOCS)
        orchestrator = make_orchestrator(store, tiers=[tier1], retriever=retriever)

        events = await run(orchestrator, chat("What is a key-value lookup?"))

        terminal = events[-1]
        assert terminal.type == TurnEventType.DELIVERED
        assert terminal.status == "ok"
        assert terminal.artifacts == []
        assert terminal.model_used == "tier1"
        assert terminal.text == "A key-value lookup fetches a value by its key."
        prompt, max_tokens = tier1.calls[0]
        assert "get(key) returns the value." in prompt.system
        assert "put(key, value) stores a value." in prompt.system
        assert max_tokens == 512

    @pytest.mark.asyncio
    async def test_progress_then_one_terminal(self, store):
        """Progress events in stage order, then exactly one terminal event."""
        events = await run(make_orchestrator(store), chat("hello"))

        assert [e.stage for e in events[:-1]] == ["retrieving", "generating", "parsing", "persisting"]
        assert [e.sequence for e in events] == [1, 2, 3, 4, 5]
        assert sum(1 for e in events if e.is_terminal) == 1

    @pytest.mark.asyncio
    async def test_pair_persisted_in_order(self, store):
        """User then assistant message are stored with provenance."""
        await run(make_orchestrator(store), chat("hello", turn_id="t1"))

        user, assistant = store.messages["s1"]
        assert user.role == MessageRole.USER
        assert user.content == "hello"
        assert assistant.role == MessageRole.ASSISTANT
        assert assistant.model_used == "tier1"
        assert assistant.tokens_used == 512
        assert user.turn_id == assistant.turn_id == "t1"
        assert user.created_at <= assistant.created_at

    @pytest.mark.asyncio
    async def test_generate_two_named_files(self, store):
        """Two annotated blocks come back in order and land in the project."""
        tier1 = ScriptedTier("tier1", TWO_FILES)
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, generate("Build two modules"))

        terminal = events[-1]
        assert terminal.status == "ok"
        assert [a.filename for a in terminal.artifacts] == ["a.ts", "b.ts"]
        assert [a.order_index for a in terminal.artifacts] == [0, 1]
        project = store.projects["s1"]
        assert list(project.files) == ["a.ts", "b.ts"]
        assert project.files["a.ts"] == "export const a = 1;\n"
        assert project.last_generated_at is not None
        assert project.metadata["model_used"] == "tier1"
        assert tier1.calls[0][1] == 4096

    @pytest.mark.asyncio
    async def test_regenerated_path_replaces_content(self, store):
        """Files accumulate by path across generate turns."""
        tier1 = ScriptedTier(
            "tier1",
            TWO_FILES,
            "**a.ts**\n```ts\nexport const a = 42;\n```\n**c.ts**\n```ts\nexport const c = 3;\n```\n",
        )
        orchestrator = make_orchestrator(store, tiers=[tier1])

        await run(orchestrator, generate("first"))
        await run(orchestrator, generate("second"))

        files = store.projects["s1"].files
        assert list(files) == ["a.ts", "b.ts", "c.ts"]
        assert files["a.ts"] == "export const a = 42;\n"
        assert files["b.ts"] == "export const b = 2;\n"

    @pytest.mark.asyncio
    async def test_unnamed_artifacts_not_merged(self, store):
        """Blocks without filenames are delivered but not stored as files."""
        tier1 = ScriptedTier("tier1", "```ts\nconst x = 1;\n```\n")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, generate("snippet"))

        assert len(events[-1].artifacts) == 1
        assert events[-1].artifacts[0].filename is None
        project = store.projects["s1"]
        assert project.files == {}
        assert project.metadata["unnamed_artifacts"] == 1

    @pytest.mark.asyncio
    async def test_dotfiles_and_route_files_land_in_project(self, store):
        """Dotfiles and route-style paths are stored under their exact names."""
        tier1 = ScriptedTier(
            "tier1",
            "**.dev.vars**\n```\nAPI_KEY=dev\n```\n\n"
            "**src/pages/[id].tsx**\n```tsx\nexport default function Page() {}\n```\n\n"
            "**app/(auth)/page.tsx**\n```tsx\nexport default function Login() {}\n```\n",
        )
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, generate("Scaffold the app"))

        project = store.projects["s1"]
        assert list(project.files) == [".dev.vars", "src/pages/[id].tsx", "app/(auth)/page.tsx"]
        assert project.files[".dev.vars"] == "API_KEY=dev\n"
        assert project.metadata["unnamed_artifacts"] == 0
        assert all(a.filename for a in events[-1].artifacts)

    @pytest.mark.asyncio
    async def test_framework_name_not_stored_as_file(self, store):
        """A framework name above a block does not become a project file."""
        tier1 = ScriptedTier("tier1", "**Next.js**\n```js\nexport default {}\n```\n")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, generate("Configure Next.js"))

        assert events[-1].artifacts[0].filename is None
        assert store.projects["s1"].files == {}

    @pytest.mark.asyncio
    async def test_narrative_delivered_with_artifacts(self, store):
        """Prose around the blocks reaches the terminal payload."""
        tier1 = ScriptedTier("tier1", TWO_FILES + "\nRun it with npm start.\n")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, generate("Build two modules"))

        payload = events[-1].to_dict()
        assert payload["narrative"] == [
            "Here is the project.\n\n**a.ts**",
            "**b.ts**",
            "Run it with npm start.",
        ]
        assert len(payload["narrative"]) == len(payload["artifacts"]) + 1

    @pytest.mark.asyncio
    async def test_chat_does_not_touch_project(self, store):
        """Chat turns with code still parse but never write project state."""
        tier1 = ScriptedTier("tier1", "**a.ts**\n```ts\nx\n```\n")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, chat("show me"))

        assert events[-1].artifacts[0].filename == "a.ts"
        assert "s1" not in store.projects

    @pytest.mark.asyncio
    async def test_history_feeds_next_turn(self, store):
        """The next turn sees the previous exchange and a larger budget."""
        tier1 = ScriptedTier("tier1", "first answer", "second answer")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        await run(orchestrator, chat("first question"))
        await run(orchestrator, chat("second question"))

        prompt, max_tokens = tier1.calls[1]
        assert [m["content"] for m in prompt.messages] == [
            "first question",
            "first answer",
            "second question",
        ]
        assert max_tokens == 1024

    @pytest.mark.asyncio
    async def test_tier_preference_passed_through(self, store):
        """A requested tier is tried first."""
        tier1 = ScriptedTier("tier1", "one")
        tier2 = ScriptedTier("tier2", "two")
        orchestrator = make_orchestrator(store, tiers=[tier1, tier2])
        request = TurnRequest(type=TurnType.CHAT, session_id="s1", text="hi", tier="tier2")

        events = await run(orchestrator, request)

        assert events[-1].model_used == "tier2"

    @pytest.mark.asyncio
    async def test_handle_returns_terminal_only(self, store):
        """handle() is the request/response form of run_turn()."""
        terminal = await make_orchestrator(store).handle(chat("hi"))

        assert terminal.is_terminal
        assert terminal.status == "ok"


class TestFallbackAndDegradation:
    """Non-fatal failures."""

    @pytest.mark.asyncio
    async def test_primary_fails_secondary_answers(self, store):
        """A failing primary tier still gives an ok turn from the secondary."""
        tier1 = ScriptedTier("tier1", RuntimeError("primary down"))
        tier2 = ScriptedTier("tier2", "secondary answer")
        orchestrator = make_orchestrator(store, tiers=[tier1, tier2])

        events = await run(orchestrator, chat("hello"))

        assert events[-1].status == "ok"
        assert events[-1].model_used == "tier2"
        assert store.messages["s1"][1].model_used == "tier2"

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades(self, store):
        """Embedding failure gives an empty documentation section, not an error."""
        tier1 = ScriptedTier("tier1", "answer")
        orchestrator = make_orchestrator(
            store, tiers=[tier1], embedder=FakeEmbedder(error=RuntimeError("embed down"))
        )

        events = await run(orchestrator, chat("hello"))

        assert events[-1].status == "ok"
        assert "No documentation was found" in tier1.calls[0][0].system

    @pytest.mark.asyncio
    async def test_retrieval_failure_degrades(self, store):
        """Index failure is absorbed the same way."""
        orchestrator = make_orchestrator(
            store, retriever=FakeRetriever(error=RuntimeError("index down"))
        )

        events = await run(orchestrator, chat("hello"))

        assert events[-1].status == "ok"
        assert len(store.messages["s1"]) == 2

    @pytest.mark.asyncio
    async def test_retrieval_uses_configured_top_k(self, store):
        """The index is asked for the configured number of documents."""
        retriever = FakeRetriever(DOCS)
        orchestrator = make_orchestrator(
            store, retriever=retriever, config=AgentConfig(retrieval_top_k=5)
        )

        await run(orchestrator, chat("hello"))

        assert retriever.calls == [5]


class TestFailures:
    """Fatal failures: FAILED terminal event, nothing persisted."""

    @pytest.mark.asyncio
    async def test_history_failure(self, store):
        """History read failure fails the turn and persists nothing."""
        store.history_error = RuntimeError("db unreachable")
        tier1 = ScriptedTier("tier1", "answer")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        events = await run(orchestrator, chat("hello"))

        terminal = events[-1]
        assert terminal.type == TurnEventType.FAILED
        assert terminal.status == "error"
        assert terminal.error_kind == "HistoryUnavailable"
        assert store.persist_calls == 0
        assert store.messages == {}
        assert tier1.calls == []

    @pytest.mark.asyncio
    async def test_all_tiers_fail(self, store):
        """ModelUnavailable after every tier and the degraded attempt."""
        orchestrator = make_orchestrator(
            store,
            tiers=[ScriptedTier("tier1", RuntimeError("down")), ScriptedTier("tier2", "")],
        )

        events = await run(orchestrator, chat("hello"))

        assert events[-1].error_kind == "ModelUnavailable"
        assert store.persist_calls == 0

    @pytest.mark.asyncio
    async def test_persistence_failure(self, store):
        """A failed write is a terminal error even though generation succeeded."""
        store.persist_error = RuntimeError("disk full")

        events = await run(make_orchestrator(store), chat("hello"))

        terminal = events[-1]
        assert terminal.error_kind == "PersistenceFailure"
        assert terminal.text == ""
        assert "disk full" not in terminal.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"session_id": "s1", "text": ""},
            {"session_id": "s1", "text": "   "},
            {"session_id": "", "text": "hello"},
            {"session_id": "other", "text": "hello"},
        ],
    )
    async def test_validation_before_any_call(self, store, request_kwargs):
        """Malformed requests fail before any collaborator is called."""
        embedder = FakeEmbedder()
        tier1 = ScriptedTier("tier1", "answer")
        orchestrator = make_orchestrator(store, tiers=[tier1], embedder=embedder)

        events = await run(orchestrator, TurnRequest(type=TurnType.CHAT, **request_kwargs))

        assert len(events) == 1
        assert events[0].error_kind == "ValidationError"
        assert embedder.calls == []
        assert tier1.calls == []
        assert store.log == []

    @pytest.mark.asyncio
    async def test_text_too_long(self, store):
        """Oversized text is rejected."""
        orchestrator = make_orchestrator(store, config=AgentConfig(max_text_length=10))

        events = await run(orchestrator, chat("x" * 11))

        assert events[-1].error_kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self, store):
        """Unforeseen exceptions still end in one terminal event."""
        parser = MagicMock()
        parser.parse.side_effect = KeyError("surprise")

        events = await run(make_orchestrator(store, parser=parser), chat("hello"))

        assert events[-1].error_kind == "InternalError"
        assert "surprise" not in events[-1].error
        assert store.persist_calls == 0


class TestIdempotentPersistence:
    """Replayed turns."""

    @pytest.mark.asyncio
    async def test_replayed_turn_not_duplicated(self, store):
        """The same turn id twice stores one message pair."""
        tier1 = ScriptedTier("tier1", "answer")
        orchestrator = make_orchestrator(store, tiers=[tier1])

        first = await run(orchestrator, chat("hello", turn_id="turn-1"))
        second = await run(orchestrator, chat("hello", turn_id="turn-1"))

        assert first[-1].status == "ok"
        assert second[-1].status == "ok"
        assert len(store.messages["s1"]) == 2
        assert store.persist_calls == 2

    @pytest.mark.asyncio
    async def test_distinct_turns_both_stored(self, store):
        """Different turn ids store separate pairs."""
        orchestrator = make_orchestrator(store)

        await run(orchestrator, chat("one", turn_id="t1"))
        await run(orchestrator, chat("two", turn_id="t2"))

        assert len(store.messages["s1"]) == 4

    @pytest.mark.asyncio
    async def test_default_persist_turn_skips_state_on_replay(self, store):
        """Stores relying on the port's persist_turn leave the project alone on replay."""

        class AppendOnlyStore(InMemoryStore):
            persist_turn = IConversationStore.persist_turn

        append_only = AppendOnlyStore()
        tier1 = ScriptedTier(
            "tier1",
            "**a.ts**\n```ts\nexport const a = 1;\n```\n",
            "**a.ts**\n```ts\nexport const a = 2;\n```\n",
        )
        orchestrator = make_orchestrator(append_only, tiers=[tier1])

        await run(orchestrator, generate("build", turn_id="t1"))
        replay = await run(orchestrator, generate("build", turn_id="t1"))

        assert replay[-1].status == "ok"
        assert len(append_only.messages["s1"]) == 2
        assert append_only.projects["s1"].files["a.ts"] == "export const a = 1;\n"


class TestAgentConfig:
    """Token budget policy."""

    def test_budgets(self):
        """generate > multi-exchange chat > short chat."""
        config = AgentConfig()
        assert config.token_budget(TurnType.CHAT, has_history=False) == 512
        assert config.token_budget(TurnType.CHAT, has_history=True) == 1024
        assert config.token_budget(TurnType.GENERATE, has_history=False) == 4096
        assert config.token_budget(TurnType.GENERATE, has_history=True) == 4096

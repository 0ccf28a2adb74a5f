"""
Agent Orchestrator.

Runs one turn through the state machine:

    RECEIVED -> RETRIEVING -> GENERATING -> PARSING -> PERSISTING -> DELIVERED

Any non-terminal state can move to FAILED, which persists nothing.

- RETRIEVING: embedding + retrieval and history fetch run concurrently and
  are joined before anything else happens. Retrieval failure degrades to
  no documentation; history failure fails the turn.
- GENERATING: bounded context, prompt, and the model fallback cascade.
- PARSING: code artifacts and narrative from the generated text.
- PERSISTING: message pair (and, for generate turns, the project state)
  written in one call, deduplicated by turn id.

An orchestrator is bound to one session. The session registry makes sure
only one turn per session runs at a time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional

from ..domain.entities import (
    Message,
    MessageRole,
    ModelResponse,
    ProjectState,
    RetrievalResult,
    TurnEvent,
    TurnRequest,
    TurnState,
    TurnType,
    utcnow,
)
from ..domain.errors import (
    AgentError,
    HistoryUnavailable,
    InternalError,
    PersistenceFailure,
    RetrievalDegraded,
    TurnValidationError,
)
from ..domain.ports import IConversationStore, IEmbeddingProvider, IRetriever
from ..providers.cascade import ModelCascade
from .context_assembler import ContextAssembler
from .event_streamer import EventStreamer
from .prompt_builder import DEFAULT_CHAT_PROMPT, DEFAULT_GENERATE_PROMPT, PromptBuilder
from .response_parser import ParsedResponse, ResponseParser

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Configuration for the agent orchestrator.

    Attributes:
        chat_system_prompt: System prompt for conversational turns
        generate_system_prompt: System prompt for code-generation turns
        doc_budget: Max characters of documentation in the context
        project_budget: Max characters of project summary in the context
        history_window: Most recent messages included in the prompt
        retrieval_top_k: Documents requested from the index
        short_chat_max_tokens: Token budget for a chat turn with no history
        chat_max_tokens: Token budget for a multi-exchange chat turn
        generate_max_tokens: Token budget for a code-generation turn
        max_text_length: Longest accepted user text
    """

    chat_system_prompt: str = DEFAULT_CHAT_PROMPT
    generate_system_prompt: str = DEFAULT_GENERATE_PROMPT
    doc_budget: int = 1000
    project_budget: int = 800
    history_window: int = 6
    retrieval_top_k: int = 3
    short_chat_max_tokens: int = 512
    chat_max_tokens: int = 1024
    generate_max_tokens: int = 4096
    max_text_length: int = 10000

    def token_budget(self, turn_type: TurnType, has_history: bool) -> int:
        """Token budget for a call: generate > multi-exchange chat > short chat."""
        if turn_type == TurnType.GENERATE:
            return self.generate_max_tokens
        return self.chat_max_tokens if has_history else self.short_chat_max_tokens


class AgentOrchestrator:
    """Turn orchestration for one session.

    Produces progress events followed by exactly one terminal event.

    Usage:
        orchestrator = AgentOrchestrator(
            session_id="session-1",
            cascade=cascade,
            embedder=embedder,
            retriever=document_index,
            store=conversation_store,
        )

        async for event in orchestrator.run_turn(request):
            await websocket.send_json(event.to_dict())
    """

    def __init__(
        self,
        session_id: str,
        cascade: ModelCascade,
        embedder: IEmbeddingProvider,
        retriever: IRetriever,
        store: IConversationStore,
        config: Optional[AgentConfig] = None,
        assembler: Optional[ContextAssembler] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        parser: Optional[ResponseParser] = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_id: Session this orchestrator owns
            cascade: Model tiers with fallback
            embedder: Embedding provider for the retrieval query
            retriever: Documentation index
            store: Conversation store
            config: Agent configuration
            assembler: Context assembler (built from config if None)
            prompt_builder: Prompt builder (built from config if None)
            parser: Response parser
        """
        self.session_id = session_id
        self.cascade = cascade
        self.embedder = embedder
        self.retriever = retriever
        self.store = store
        self.config = config or AgentConfig()
        self.assembler = assembler or ContextAssembler(
            doc_budget=self.config.doc_budget,
            project_budget=self.config.project_budget,
            history_window=self.config.history_window,
        )
        self.prompt_builder = prompt_builder or PromptBuilder(
            chat_system_prompt=self.config.chat_system_prompt,
            generate_system_prompt=self.config.generate_system_prompt,
        )
        self.parser = parser or ResponseParser()

    async def run_turn(self, request: TurnRequest) -> AsyncIterator[TurnEvent]:
        """Process one turn and stream its events.

        Args:
            request: Inbound turn

        Yields:
            Progress events, then one DELIVERED or FAILED event
        """
        streamer = EventStreamer(turn_id=request.turn_id, session_id=request.session_id)
        received_at = utcnow()
        state = TurnState.RECEIVED

        try:
            self._validate(request)

            state = TurnState.RETRIEVING
            yield streamer.progress(state)
            documents, history, project = await self._gather(request.text)

            state = TurnState.GENERATING
            yield streamer.progress(state)
            context = self.assembler.assemble(documents, history, project)
            prompt = self.prompt_builder.build(request.type, context, request.text)
            max_tokens = self.config.token_budget(request.type, has_history=bool(history))
            response = await self.cascade.generate(
                prompt, max_tokens, tier_preference=request.tier
            )

            state = TurnState.PARSING
            yield streamer.progress(state)
            parsed = self.parser.parse(response.text)

            state = TurnState.PERSISTING
            yield streamer.progress(state)
            await self._persist(request, received_at, response, parsed, project)

        except AgentError as e:
            logger.error(
                f"Turn {request.turn_id} failed in {state.value} "
                f"for session {request.session_id}: {e}"
            )
            yield streamer.failed(e)
            return
        except Exception as e:
            logger.exception(
                f"Unexpected error in {state.value} for turn {request.turn_id}: {e}"
            )
            yield streamer.failed(InternalError(f"Unexpected error in {state.value}", cause=e))
            return

        logger.info(
            f"Turn {request.turn_id} delivered for session {self.session_id} "
            f"(tier={response.model_id}, degraded={response.degraded}, "
            f"artifacts={len(parsed.artifacts)})"
        )
        yield streamer.delivered(
            response.text, parsed.artifacts, response.model_id, narrative=parsed.narrative
        )

    async def handle(self, request: TurnRequest) -> TurnEvent:
        """Process one turn and return only its terminal event."""
        terminal: Optional[TurnEvent] = None
        async for event in self.run_turn(request):
            if event.is_terminal:
                terminal = event
        if terminal is None:
            raise InternalError(f"Turn {request.turn_id} produced no terminal event")
        return terminal

    def _validate(self, request: TurnRequest) -> None:
        """Reject malformed requests before any collaborator call."""
        if not request.session_id or not request.session_id.strip():
            raise TurnValidationError("missing session id")
        if request.session_id != self.session_id:
            raise TurnValidationError("session id does not match this session")
        if not request.text or not request.text.strip():
            raise TurnValidationError("text must not be empty")
        if len(request.text) > self.config.max_text_length:
            raise TurnValidationError(
                f"text exceeds {self.config.max_text_length} characters"
            )
        if not isinstance(request.type, TurnType):
            raise TurnValidationError(f"unknown turn type: {request.type}")

    async def _gather(
        self, text: str
    ) -> tuple[list[RetrievalResult], list[Message], Optional[ProjectState]]:
        """Run retrieval and history fetch concurrently and join both."""
        retrieved, stored = await asyncio.gather(
            self._retrieve(text),
            self._read_session(),
            return_exceptions=True,
        )
        # Retrieval absorbs its own failures; anything else here is a real error
        if isinstance(retrieved, BaseException):
            raise retrieved
        if isinstance(stored, BaseException):
            raise stored

        history, project = stored
        return retrieved, history, project

    async def _retrieve(self, text: str) -> list[RetrievalResult]:
        try:
            vector = await self.embedder.embed(text)
            return await self.retriever.retrieve(vector, self.config.retrieval_top_k)
        except Exception as e:
            degraded = RetrievalDegraded("embedding or retrieval failed", cause=e)
            logger.warning(f"{degraded} ({e}); continuing without documentation")
            return []

    async def _read_session(self) -> tuple[list[Message], Optional[ProjectState]]:
        try:
            history = await self.store.read_history(
                self.session_id, limit=self.config.history_window
            )
            project = await self.store.read_project_state(self.session_id)
        except Exception as e:
            raise HistoryUnavailable(
                f"could not read session {self.session_id}", cause=e
            )
        return history, project

    async def _persist(
        self,
        request: TurnRequest,
        received_at: datetime,
        response: ModelResponse,
        parsed: ParsedResponse,
        project: Optional[ProjectState],
    ) -> None:
        user_message = Message(
            role=MessageRole.USER,
            content=request.text,
            session_id=self.session_id,
            turn_id=request.turn_id,
            created_at=received_at,
        )
        assistant_message = Message(
            role=MessageRole.ASSISTANT,
            content=response.text,
            session_id=self.session_id,
            turn_id=request.turn_id,
            model_used=response.model_id,
            tokens_used=response.token_budget_used,
        )

        new_state: Optional[ProjectState] = None
        if request.type == TurnType.GENERATE:
            base = project or ProjectState()
            merged = base.merged_with(parsed.artifacts)
            merged.metadata = {
                "model_used": response.model_id,
                "turn_id": request.turn_id,
                "file_count": len(merged.files),
                "unnamed_artifacts": len(parsed.artifacts) - len(parsed.named_artifacts),
                "degraded": response.degraded,
            }
            new_state = merged

        try:
            written = await self.store.persist_turn(
                self.session_id,
                request.turn_id,
                user_message,
                assistant_message,
                project_state=new_state,
            )
        except Exception as e:
            raise PersistenceFailure(
                f"could not persist turn {request.turn_id}", cause=e
            )

        if not written:
            logger.info(f"Turn {request.turn_id} was already persisted, nothing written")

"""FastAPI application for the developer assistant.

This is the main entry point for the assistant API server. Configuration
comes from environment variables (a .env file is loaded if present).
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
from dotenv import load_dotenv
from fastapi import FastAPI

from .agent.api import create_agent_dependencies
from .agent.api import router as agent_router
from .agent.domain.ports import IEmbeddingProvider
from .agent.memory import ConversationStore
from .agent.orchestrator import AgentConfig, AgentOrchestrator, SessionRegistry
from .agent.providers import (
    AnthropicProvider,
    BaseModelTier,
    LLMProviderConfig,
    ModelCascade,
    OllamaEmbeddingProvider,
    OllamaProvider,
    OpenAIEmbeddingProvider,
    OpenAIProvider,
)
from .agent.retrieval import PgVectorDocumentIndex

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_MODEL_TIERS = "anthropic:claude-sonnet-4-5-20250929,openai:gpt-4o-mini,ollama:llama3.3"

_PROVIDERS = {
    "anthropic": (AnthropicProvider, "ANTHROPIC_API_KEY"),
    "openai": (OpenAIProvider, "OPENAI_API_KEY"),
    "ollama": (OllamaProvider, None),
}


def _build_tiers(tier_list: Optional[str] = None) -> list[BaseModelTier]:
    """Build model tiers from a ``provider:model,...`` list.

    Tiers with missing credentials or unknown providers are skipped with
    a warning.
    """
    tier_list = tier_list if tier_list is not None else os.getenv("MODEL_TIERS", DEFAULT_MODEL_TIERS)
    tiers: list[BaseModelTier] = []

    for entry in (e.strip() for e in tier_list.split(",")):
        if not entry:
            continue
        provider, _, model = entry.partition(":")
        provider = provider.strip().lower()

        if provider not in _PROVIDERS:
            logger.warning(f"Unknown model provider '{provider}' in MODEL_TIERS, skipped")
            continue

        tier_cls, key_env = _PROVIDERS[provider]
        api_key = os.getenv(key_env) if key_env else "not-needed"
        if not api_key:
            logger.warning(f"{key_env} not set, skipping tier {entry}")
            continue

        try:
            tier = tier_cls(
                LLMProviderConfig(
                    api_key=api_key,
                    model=model.strip() or tier_cls.DEFAULT_MODEL,
                    base_url=os.getenv("OLLAMA_BASE_URL") if provider == "ollama" else None,
                )
            )
        except Exception as e:
            logger.warning(f"Failed to initialize tier {entry}: {e}")
            continue

        logger.info(f"Model tier configured: {tier.tier_id}")
        tiers.append(tier)

    return tiers


def _build_embedder() -> IEmbeddingProvider:
    """Build the embedding provider used for retrieval queries."""
    provider = os.getenv("EMBEDDING_PROVIDER", "ollama").lower()
    embedding_model = os.getenv("EMBEDDING_MODEL")

    if provider == "openai":
        return OpenAIEmbeddingProvider(
            LLMProviderConfig(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                model=OpenAIProvider.DEFAULT_MODEL,
                embedding_model=embedding_model,
            )
        )

    if provider != "ollama":
        logger.warning(f"Unknown EMBEDDING_PROVIDER '{provider}', using ollama")
    return OllamaEmbeddingProvider(
        LLMProviderConfig(
            api_key="not-needed",
            model=OllamaProvider.DEFAULT_MODEL,
            embedding_model=embedding_model,
            base_url=os.getenv("OLLAMA_BASE_URL"),
        )
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: database pool, model tiers, embedder, session registry
    - Shutdown: drain session workers, close clients, close the pool
    """
    logger.info("Starting developer assistant API...")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required")

    db_pool = await asyncpg.create_pool(database_url, min_size=2, max_size=10)
    logger.info("Database pool initialized")

    tiers = _build_tiers()
    embedder = _build_embedder()
    store = ConversationStore(db_pool)
    registry: Optional[SessionRegistry] = None

    if tiers:
        cascade = ModelCascade(tiers)
        retriever = PgVectorDocumentIndex(
            db_pool,
            table=os.getenv("DOCUMENTS_TABLE", "documents"),
        )
        config = AgentConfig(retrieval_top_k=int(os.getenv("RETRIEVAL_TOP_K", "3")))

        def orchestrator_factory(session_id: str) -> AgentOrchestrator:
            return AgentOrchestrator(
                session_id=session_id,
                cascade=cascade,
                embedder=embedder,
                retriever=retriever,
                store=store,
                config=config,
            )

        registry = SessionRegistry(
            orchestrator_factory,
            max_queue_size=int(os.getenv("SESSION_QUEUE_SIZE", "16")),
            idle_timeout=float(os.getenv("SESSION_IDLE_SECONDS", "300")),
        )
        logger.info(f"Assistant ready with tiers: {', '.join(cascade.tier_ids)}")
    else:
        logger.error("No usable model tiers configured - assistant unavailable")

    create_agent_dependencies(registry, store)

    yield

    # Shutdown (reverse order of initialization)
    logger.info("Shutting down developer assistant API...")
    create_agent_dependencies(None, None)

    if registry:
        await registry.shutdown(timeout=30.0)

    for client in [*tiers, embedder]:
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error closing client: {e}")

    await db_pool.close()
    logger.info("Database pool closed")


# Create FastAPI application
app = FastAPI(
    title="Developer Assistant API",
    description="""
    Conversational assistant for platform APIs.

    - **WebSocket** `/api/assistant/ws`: progress events and a terminal payload per turn
    - **POST** `/api/assistant/turn`: the same turn, terminal payload only
    - **GET** `/api/assistant/sessions/{id}/messages` and `/project`: stored state
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(agent_router)


# Entry point for running with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.devassist.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
    )

"""FastAPI router and schemas for the assistant channel."""

from .router import create_agent_dependencies, router
from .schemas import (
    ArtifactModel,
    MessageListResponse,
    MessageResponse,
    ProjectStateResponse,
    TurnRequestModel,
    TurnResponse,
)

__all__ = [
    "router",
    "create_agent_dependencies",
    "ArtifactModel",
    "MessageListResponse",
    "MessageResponse",
    "ProjectStateResponse",
    "TurnRequestModel",
    "TurnResponse",
]

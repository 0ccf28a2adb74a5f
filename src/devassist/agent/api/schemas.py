"""
Pydantic schemas for the assistant API.

Wire format is camelCase (``sessionId``, ``modelUsed``, ``orderIndex``);
snake_case field names are accepted on input too.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from ..domain.entities import Message, ProjectState, TurnRequest, TurnType


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 10000
MAX_ID_LENGTH = 200


class _WireModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        protected_namespaces = ()


# =============================================================================
# Turn Schemas
# =============================================================================


class TurnRequestModel(_WireModel):
    """Inbound turn, for both the WebSocket and the REST fallback."""

    type: TurnType
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    turn_id: Optional[str] = Field(None, min_length=1, max_length=MAX_ID_LENGTH)
    tier: Optional[str] = Field(None, max_length=MAX_ID_LENGTH)

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "type": "generate",
                "sessionId": "session-1",
                "text": "Write a worker that caches responses in a key-value store",
                "turnId": "b4c5e0f2-2d7e-4d8b-9f6e-6a1c2d3e4f50",
            }
        }

    def to_turn_request(self) -> TurnRequest:
        return TurnRequest(
            type=self.type,
            session_id=self.session_id,
            text=self.text,
            turn_id=self.turn_id or str(uuid.uuid4()),
            tier=self.tier,
        )


class ArtifactModel(_WireModel):
    """A code artifact in a terminal payload."""

    filename: Optional[str] = None
    language: Optional[str] = None
    content: str
    order_index: int


class TurnResponse(_WireModel):
    """Terminal payload of a turn."""

    type: str
    status: str
    text: str = ""
    artifacts: list[ArtifactModel] = []
    narrative: list[str] = []
    model_used: Optional[str] = None
    sequence: int
    turn_id: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "type": "delivered",
                "status": "ok",
                "text": "**a.ts**\n```ts\nexport const a = 1;\n```",
                "artifacts": [
                    {
                        "filename": "a.ts",
                        "language": "ts",
                        "content": "export const a = 1;\n",
                        "orderIndex": 0,
                    }
                ],
                "narrative": ["**a.ts**", ""],
                "modelUsed": "anthropic:claude-sonnet-4-5-20250929",
                "sequence": 5,
                "turnId": "b4c5e0f2-2d7e-4d8b-9f6e-6a1c2d3e4f50",
                "sessionId": "session-1",
            }
        }


# =============================================================================
# Session Schemas
# =============================================================================


class MessageResponse(_WireModel):
    """A stored message."""

    id: UUID
    role: str
    content: str
    turn_id: Optional[str] = None
    model_used: Optional[str] = None
    tokens_used: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            turn_id=message.turn_id,
            model_used=message.model_used,
            tokens_used=message.tokens_used,
            created_at=message.created_at,
        )


class MessageListResponse(_WireModel):
    """Stored messages for a session, oldest first."""

    session_id: str
    messages: list[MessageResponse]
    count: int


class ProjectStateResponse(_WireModel):
    """A session's generated files."""

    session_id: str
    files: dict[str, str]
    last_generated_at: Optional[datetime] = None
    metadata: dict[str, Any] = {}

    @classmethod
    def from_state(cls, session_id: str, state: ProjectState) -> ProjectStateResponse:
        return cls(
            session_id=session_id,
            files=dict(state.files),
            last_generated_at=state.last_generated_at,
            metadata=dict(state.metadata),
        )

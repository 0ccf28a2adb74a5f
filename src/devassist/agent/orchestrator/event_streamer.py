"""
Event Streamer for TurnEvent creation.

Manages event sequence state for one turn and creates progress and
terminal TurnEvents with auto-incrementing sequence numbers.
"""

from __future__ import annotations

from typing import Optional

from ..domain.entities import CodeArtifact, TurnEvent, TurnEventType, TurnState
from ..domain.errors import AgentError


class EventStreamer:
    """Creates the events of a single turn.

    Usage:
        streamer = EventStreamer(turn_id=request.turn_id, session_id=request.session_id)

        yield streamer.progress(TurnState.RETRIEVING)   # sequence = 1
        yield streamer.progress(TurnState.GENERATING)   # sequence = 2
        yield streamer.delivered(text, artifacts, model_used="openai:gpt-4o-mini")
    """

    def __init__(self, turn_id: Optional[str] = None, session_id: Optional[str] = None):
        self.turn_id = turn_id
        self.session_id = session_id
        self._sequence = 0

    def _next(self) -> int:
        self._sequence += 1
        return self._sequence

    def progress(self, stage: TurnState) -> TurnEvent:
        """Create an advisory progress event for a stage."""
        return TurnEvent(
            type=TurnEventType.PROGRESS,
            sequence=self._next(),
            turn_id=self.turn_id,
            session_id=self.session_id,
            stage=stage.value,
        )

    def delivered(
        self,
        text: str,
        artifacts: list[CodeArtifact],
        model_used: Optional[str],
        narrative: Optional[list[str]] = None,
    ) -> TurnEvent:
        """Create the terminal event for a successful turn."""
        return TurnEvent(
            type=TurnEventType.DELIVERED,
            sequence=self._next(),
            turn_id=self.turn_id,
            session_id=self.session_id,
            stage=TurnState.DELIVERED.value,
            text=text,
            artifacts=list(artifacts),
            model_used=model_used,
            narrative=list(narrative or []),
        )

    def failed(self, error: AgentError) -> TurnEvent:
        """Create the terminal event for a failed turn.

        Carries the user-safe message, never the raw exception text.
        """
        return TurnEvent(
            type=TurnEventType.FAILED,
            sequence=self._next(),
            turn_id=self.turn_id,
            session_id=self.session_id,
            stage=TurnState.FAILED.value,
            error=error.user_message,
            error_kind=error.kind.value,
        )

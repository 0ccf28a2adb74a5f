"""
FastAPI Router for the developer assistant.

Provides the WebSocket channel, the request/response fallback, and read
endpoints for stored sessions. Both channel modes submit turns to the
same SessionRegistry; the transport carries no orchestration state.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..domain.entities import TurnEvent
from ..domain.errors import ErrorKind, TurnValidationError
from ..domain.ports import IConversationStore
from ..orchestrator.event_streamer import EventStreamer
from ..orchestrator.session_registry import SessionRegistry
from .schemas import (
    MessageListResponse,
    MessageResponse,
    ProjectStateResponse,
    TurnRequestModel,
    TurnResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["assistant"])

SendFn = Callable[[dict[str, Any]], Awaitable[None]]

# HTTP status for failed turns on the request/response fallback
_STATUS_BY_KIND = {
    ErrorKind.VALIDATION_ERROR.value: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SESSION_BUSY.value: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.MODEL_UNAVAILABLE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.HISTORY_UNAVAILABLE.value: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.PERSISTENCE_FAILURE.value: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INTERNAL_ERROR.value: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# =============================================================================
# Dependencies
# =============================================================================


class AgentDependencies:
    """Container for assistant dependencies.

    Injected at application startup.
    """

    registry: Optional[SessionRegistry] = None
    store: Optional[IConversationStore] = None


_deps = AgentDependencies()


def create_agent_dependencies(
    registry: Optional[SessionRegistry],
    store: Optional[IConversationStore],
) -> None:
    """Initialize assistant dependencies.

    Call this at application startup (and with None at shutdown).

    Args:
        registry: Session registry that runs turns
        store: Conversation store for the read endpoints
    """
    _deps.registry = registry
    _deps.store = store


def get_registry() -> SessionRegistry:
    """Get the session registry dependency."""
    if not _deps.registry:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant not initialized",
        )
    return _deps.registry


def get_store() -> IConversationStore:
    """Get the conversation store dependency."""
    if not _deps.store:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant not initialized",
        )
    return _deps.store


def _invalid_request_event(data: Any, message: str) -> TurnEvent:
    """FAILED event for a request that could not be parsed."""
    turn_id = session_id = None
    if isinstance(data, dict):
        turn_id = data.get("turnId") or data.get("turn_id")
        session_id = data.get("sessionId") or data.get("session_id")
    streamer = EventStreamer(
        turn_id=turn_id if isinstance(turn_id, str) else None,
        session_id=session_id if isinstance(session_id, str) else None,
    )
    return streamer.failed(TurnValidationError(message))


def _describe_validation_error(e: ValidationError) -> str:
    """Short, user-safe summary of the first validation problem."""
    errors = e.errors()
    if not errors:
        return "malformed request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "request"
    return f"{location}: {first.get('msg', 'invalid value')}"


# =============================================================================
# REST Endpoints
# =============================================================================


@router.post("/turn", response_model=TurnResponse)
async def submit_turn(
    request: TurnRequestModel,
    registry: SessionRegistry = Depends(get_registry),
) -> JSONResponse:
    """Run a turn and return only its terminal payload.

    For progress events, use the WebSocket endpoint instead.
    """
    event = await registry.submit(request.to_turn_request())
    status_code = _STATUS_BY_KIND.get(event.error_kind, status.HTTP_200_OK)
    return JSONResponse(status_code=status_code, content=event.to_dict())


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: str,
    limit: int = Query(50, ge=1, le=500),
    store: IConversationStore = Depends(get_store),
) -> MessageListResponse:
    """List the most recent messages of a session, oldest first."""
    try:
        messages = await store.read_history(session_id, limit)
    except Exception as e:
        logger.exception(f"Failed to read messages for session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversation history unavailable",
        )

    return MessageListResponse(
        session_id=session_id,
        messages=[MessageResponse.from_message(m) for m in messages],
        count=len(messages),
    )


@router.get("/sessions/{session_id}/project", response_model=ProjectStateResponse)
async def get_project(
    session_id: str,
    store: IConversationStore = Depends(get_store),
) -> ProjectStateResponse:
    """Get the generated files of a session."""
    try:
        state = await store.read_project_state(session_id)
    except Exception as e:
        logger.exception(f"Failed to read project state for session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Project state unavailable",
        )

    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No project for this session",
        )
    return ProjectStateResponse.from_state(session_id, state)


# =============================================================================
# WebSocket Endpoint
# =============================================================================


def _task_exception_handler(task: asyncio.Task) -> None:
    """Log exceptions from per-turn tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            f"Turn task {task.get_name()} failed: {exc}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for streaming turns.

    Message formats:
    - Client -> Server:
        {"type": "chat" | "generate", "sessionId": "...", "text": "...", "turnId": "..."}
        {"type": "ping"}

    - Server -> Client:
        {"type": "progress", "stage": "retrieving", "sequence": 1, "turnId": "..."}
        {"type": "delivered", "status": "ok", "text": "...", "artifacts": [...], "modelUsed": "..."}
        {"type": "failed", "status": "error", "error": "...", "kind": "..."}
        {"type": "pong"}

    Each turn runs as its own task, so the socket keeps reading (and
    answering pings) while turns are in flight.
    """
    await websocket.accept()
    logger.info("WebSocket connected")

    registry = _deps.registry
    if not registry:
        await websocket.send_json({
            "type": "failed",
            "status": "error",
            "error": "Assistant not initialized",
            "kind": ErrorKind.INTERNAL_ERROR.value,
        })
        await websocket.close()
        return

    send_lock = asyncio.Lock()

    async def send(payload: dict[str, Any]) -> None:
        async with send_lock:
            await websocket.send_json(payload)

    tasks: set[asyncio.Task] = set()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await send(_invalid_request_event(None, "message is not valid JSON").to_dict())
                continue

            msg_type = data.get("type") if isinstance(data, dict) else None

            if msg_type == "ping":
                # Heartbeat
                await send({"type": "pong"})

            elif msg_type in ("chat", "generate"):
                task = asyncio.create_task(
                    _stream_turn(send, registry, data),
                    name=f"turn-{data.get('turnId') or data.get('turn_id') or 'new'}",
                )
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                task.add_done_callback(_task_exception_handler)

            else:
                await send(
                    _invalid_request_event(data, f"unknown message type: {msg_type!r}").to_dict()
                )

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await send({
                "type": "failed",
                "status": "error",
                "error": "Connection error",
                "kind": ErrorKind.INTERNAL_ERROR.value,
            })
        except Exception as send_error:
            logger.debug(f"Could not report WebSocket error to client: {send_error}")
    finally:
        # Queued turns still complete and persist in their session workers
        for task in tasks:
            task.cancel()


async def _stream_turn(send: SendFn, registry: SessionRegistry, data: dict[str, Any]) -> None:
    """Validate one inbound request, run it, and stream its events.

    Args:
        send: Serialized send on the socket
        registry: Session registry
        data: Decoded client message
    """
    try:
        model = TurnRequestModel.model_validate(data)
    except ValidationError as e:
        await send(_invalid_request_event(data, _describe_validation_error(e)).to_dict())
        return

    async def emit(event: TurnEvent) -> None:
        await send(event.to_dict())

    try:
        terminal = await registry.submit(model.to_turn_request(), emit=emit)
        await send(terminal.to_dict())
    except asyncio.CancelledError:
        logger.info(f"Turn streaming cancelled for session {model.session_id}")
        raise

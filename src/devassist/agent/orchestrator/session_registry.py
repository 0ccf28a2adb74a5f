"""
Session actors.

Each session gets one SessionWorker: a bounded mailbox plus a single
worker task that runs the session's turns one at a time, in submission
order. Different sessions run in parallel with nothing shared between
them. Turn n is fully persisted before turn n+1 of the same session
starts, because there is only one consumer per mailbox.

Key Features:
- Bounded mailbox per session (a full mailbox rejects with SessionBusy)
- Idle workers stop and are dropped from the registry
- Graceful shutdown drains queued turns with a timeout
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..domain.entities import TurnEvent, TurnRequest
from ..domain.errors import AgentError, InternalError, SessionBusy, TurnValidationError
from .agent import AgentOrchestrator
from .event_streamer import EventStreamer

logger = logging.getLogger(__name__)

EmitFn = Callable[[TurnEvent], Awaitable[None]]
OrchestratorFactory = Callable[[str], AgentOrchestrator]


def failed_event(request: TurnRequest, error: AgentError) -> TurnEvent:
    """Terminal FAILED event for a turn that never reached the orchestrator."""
    return EventStreamer(turn_id=request.turn_id, session_id=request.session_id).failed(error)


@dataclass
class QueuedTurn:
    """A turn waiting in a session mailbox."""

    request: TurnRequest
    emit: Optional[EmitFn] = None
    future: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())


class SessionWorker:
    """Single-consumer mailbox for one session.

    Usage:
        worker = SessionWorker("session-1", orchestrator)
        worker.start()
        terminal = await worker.submit(request, emit=send_progress)
        await worker.stop(timeout=10)
    """

    def __init__(
        self,
        session_id: str,
        orchestrator: AgentOrchestrator,
        max_queue_size: int = 16,
        idle_timeout: float = 300.0,
        on_idle: Optional[Callable[[SessionWorker], None]] = None,
    ):
        """Initialize the worker.

        Args:
            session_id: Session this worker owns
            orchestrator: Orchestrator bound to the session
            max_queue_size: Maximum queued turns
            idle_timeout: Seconds without turns before the worker stops
            on_idle: Called when the worker stops because it was idle
        """
        self.session_id = session_id
        self.orchestrator = orchestrator
        self.max_queue_size = max_queue_size
        self.idle_timeout = idle_timeout
        self._on_idle = on_idle

        self._queue: asyncio.Queue[QueuedTurn] = asyncio.Queue(maxsize=max_queue_size)
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.turns_processed = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the worker task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(
            self._worker_loop(), name=f"session-worker-{self.session_id}"
        )
        logger.debug(f"Session worker started for {self.session_id}")

    def enqueue(self, request: TurnRequest, emit: Optional[EmitFn] = None) -> asyncio.Future:
        """Queue a turn without waiting for it.

        Returns:
            Future resolving to the terminal TurnEvent

        Raises:
            SessionBusy: If the mailbox is full or the worker has stopped
        """
        if not self._running:
            raise SessionBusy(f"worker for session {self.session_id} is not running")

        item = QueuedTurn(request=request, emit=emit)
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            raise SessionBusy(
                f"mailbox full for session {self.session_id} ({self.max_queue_size} queued)"
            )
        return item.future

    async def submit(self, request: TurnRequest, emit: Optional[EmitFn] = None) -> TurnEvent:
        """Queue a turn and wait for its terminal event."""
        return await self.enqueue(request, emit)

    async def _worker_loop(self) -> None:
        """Process turns until idle or stopped."""
        try:
            while self._running:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self.idle_timeout)
                except asyncio.TimeoutError:
                    if self._queue.empty():
                        logger.debug(f"Session worker for {self.session_id} idle, stopping")
                        self._running = False
                        if self._on_idle:
                            self._on_idle(self)
                        return
                    continue

                try:
                    await self._process(item)
                finally:
                    self._queue.task_done()
        finally:
            self._running = False

    async def _process(self, item: QueuedTurn) -> None:
        """Run one turn, forwarding progress and resolving the future."""
        terminal: Optional[TurnEvent] = None
        try:
            async for event in self.orchestrator.run_turn(item.request):
                if event.is_terminal:
                    terminal = event
                elif item.emit is not None:
                    try:
                        await item.emit(event)
                    except Exception as e:
                        # Progress is advisory; the turn continues
                        logger.warning(
                            f"Failed to emit progress for turn {item.request.turn_id}: {e}"
                        )
        except asyncio.CancelledError:
            if not item.future.done():
                item.future.set_result(
                    failed_event(item.request, InternalError("turn cancelled during shutdown"))
                )
            raise
        except Exception as e:
            logger.exception(f"Session worker error on turn {item.request.turn_id}: {e}")
            terminal = failed_event(item.request, InternalError("session worker error", cause=e))

        if terminal is None:
            terminal = failed_event(
                item.request, InternalError("turn ended without a terminal event")
            )

        self.turns_processed += 1
        if not item.future.done():
            item.future.set_result(terminal)

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop the worker after draining queued turns.

        Args:
            timeout: Maximum time to wait for queued turns to complete
        """
        if self._task is None:
            return

        if self._running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Session {self.session_id} shutdown timed out with "
                    f"{self._queue.qsize()} turns queued"
                )

        self._running = False
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        # Anything still queued gets a terminal event
        while not self._queue.empty():
            item = self._queue.get_nowait()
            self._queue.task_done()
            if not item.future.done():
                item.future.set_result(
                    failed_event(item.request, SessionBusy("assistant is shutting down"))
                )


class SessionRegistry:
    """Routes turns to per-session workers.

    Usage:
        registry = SessionRegistry(
            orchestrator_factory=lambda sid: AgentOrchestrator(session_id=sid, ...),
        )
        terminal = await registry.submit(request, emit=send_progress)
        await registry.shutdown(timeout=30)
    """

    def __init__(
        self,
        orchestrator_factory: OrchestratorFactory,
        max_queue_size: int = 16,
        idle_timeout: float = 300.0,
    ):
        """Initialize the registry.

        Args:
            orchestrator_factory: Builds the orchestrator for a session id
            max_queue_size: Mailbox size per session
            idle_timeout: Seconds before an idle session worker stops
        """
        self.orchestrator_factory = orchestrator_factory
        self.max_queue_size = max_queue_size
        self.idle_timeout = idle_timeout
        self._workers: dict[str, SessionWorker] = {}
        self._closed = False

    @property
    def active_sessions(self) -> list[str]:
        return list(self._workers)

    def get_worker(self, session_id: str) -> SessionWorker:
        """Get the running worker for a session, starting one if needed."""
        worker = self._workers.get(session_id)
        if worker is None or not worker.is_running:
            worker = SessionWorker(
                session_id,
                self.orchestrator_factory(session_id),
                max_queue_size=self.max_queue_size,
                idle_timeout=self.idle_timeout,
                on_idle=self._remove,
            )
            self._workers[session_id] = worker
            worker.start()
        return worker

    def _remove(self, worker: SessionWorker) -> None:
        if self._workers.get(worker.session_id) is worker:
            del self._workers[worker.session_id]

    async def submit(self, request: TurnRequest, emit: Optional[EmitFn] = None) -> TurnEvent:
        """Route a turn to its session and wait for the terminal event.

        Never raises for turn-level problems; they come back as FAILED events.
        """
        if not request.session_id or not request.session_id.strip():
            return failed_event(request, TurnValidationError("missing session id"))
        if self._closed:
            return failed_event(request, SessionBusy("assistant is shutting down"))

        try:
            future = self.get_worker(request.session_id).enqueue(request, emit)
        except SessionBusy as e:
            logger.warning(str(e))
            return failed_event(request, e)

        return await future

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop all workers, draining their queued turns."""
        self._closed = True
        workers = list(self._workers.values())
        self._workers.clear()
        if workers:
            await asyncio.gather(*(w.stop(timeout=timeout) for w in workers))
        logger.info(f"Session registry stopped ({len(workers)} workers)")

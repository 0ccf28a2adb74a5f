"""Per-tier circuit breaker.

A tier that keeps failing is skipped for a cool-down period instead of
adding its failure latency to every turn.

State Transitions:
    CLOSED -> OPEN: When failure_count >= failure_threshold
    OPEN -> HALF_OPEN: When timeout expires
    HALF_OPEN -> CLOSED: When a trial call succeeds
    HALF_OPEN -> OPEN: When the trial call fails
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation, calls pass through
    OPEN = "open"          # Failing, tier skipped
    HALF_OPEN = "half_open"  # Testing if tier recovered


class TierCircuit:
    """Circuit breaker for one model tier.

    The cascade asks ``allow()`` before calling a tier and reports the
    outcome with ``record_success()`` / ``record_failure()``. All of this
    runs on the event loop thread, so no lock is needed.

    Attributes:
        failure_threshold: Consecutive failures before opening
        timeout: Seconds to stay open before allowing a trial call
        name: Tier id, for logging
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        timeout: float = 30.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def allow(self) -> bool:
        """Check if a call should be attempted based on current state."""
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and self._clock() - self._opened_at >= self.timeout:
                logger.info(f"Circuit '{self.name}' transitioning to HALF_OPEN")
                self._state = CircuitState.HALF_OPEN
                return True
            return False

        # HALF_OPEN - a trial call is already allowed
        return True

    def record_success(self) -> None:
        """Handle a successful call."""
        if self._state != CircuitState.CLOSED:
            logger.info(f"Circuit '{self.name}' closing after successful trial")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None

    def record_failure(self, exception: Optional[Exception] = None) -> None:
        """Handle a failed call."""
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit '{self.name}' reopening after trial failure: {exception}")
            self._open()
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            logger.warning(
                f"Circuit '{self.name}' opening after {self._failure_count} failures"
            )
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    def get_status(self) -> dict[str, Any]:
        """Get circuit breaker status for monitoring."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
        }

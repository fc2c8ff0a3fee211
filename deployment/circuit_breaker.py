"""
Per-provider circuit breaker for the retrieval collaborators (embedding,
similarity index, LLM).

A provider that keeps failing is cut off for `reset_timeout` seconds, then
retried with a limited number of trial calls before normal traffic resumes.
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # Calls pass through
    OPEN = "open"  # Calls rejected until the timeout elapses
    HALF_OPEN = "half_open"  # Letting a few trial calls through


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    pass


@dataclass
class CircuitBreaker:
    """
    Guards awaitable provider calls.

    Usage:
        breaker = CircuitBreaker(name="embedding", failure_threshold=5)
        vector = await breaker.call_async(embedder.embed, text)

        breaker.get_stats()  # {"name": "embedding", "state": "closed", ...}
    """

    name: str = "provider"
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_max_calls: int = 2

    state: CircuitState = field(default=CircuitState.CLOSED)
    consecutive_failures: int = field(default=0)
    trial_calls: int = field(default=0)
    trial_successes: int = field(default=0)
    opened_at: Optional[float] = field(default=None)
    total_calls: int = field(default=0)
    rejected_calls: int = field(default=0)

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit lets a trial call through."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.reset_timeout - (time.monotonic() - self.opened_at))

    def _set_state(self, state: CircuitState) -> None:
        if state == self.state:
            return
        log = logger.warning if state == CircuitState.OPEN else logger.info
        log(f"Circuit breaker '{self.name}': {self.state.value} -> {state.value}")
        self.state = state

    def _admit(self) -> bool:
        if self.state == CircuitState.OPEN:
            if self.retry_after > 0:
                return False
            self._set_state(CircuitState.HALF_OPEN)
            self.trial_calls = 0
            self.trial_successes = 0

        if self.state == CircuitState.HALF_OPEN:
            if self.trial_calls >= self.half_open_max_calls:
                return False
            self.trial_calls += 1

        return True

    def _on_success(self) -> None:
        self.consecutive_failures = 0
        if self.state == CircuitState.HALF_OPEN:
            self.trial_successes += 1
            if self.trial_successes >= self.half_open_max_calls:
                self.reset()

    def _release_trial(self) -> None:
        if self.state == CircuitState.HALF_OPEN and self.trial_calls > 0:
            self.trial_calls -= 1

    def _on_failure(self) -> None:
        self.consecutive_failures += 1
        if (
            self.state == CircuitState.HALF_OPEN
            or self.consecutive_failures >= self.failure_threshold
        ):
            self.opened_at = time.monotonic()
            self._set_state(CircuitState.OPEN)

    async def call_async(self, fn: Callable, *args, **kwargs) -> Any:
        """
        Run `fn(*args, **kwargs)`, awaiting the result if it is awaitable.

        Raises:
            CircuitOpenError: The provider is cut off
            Exception: Whatever `fn` raised
        """
        if not self._admit():
            self.rejected_calls += 1
            raise CircuitOpenError(
                f"Circuit '{self.name}' is {self.state.value}. "
                f"Retry in {self.retry_after:.0f}s"
            )

        self.total_calls += 1
        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            # Cancelled mid-call: no outcome, so give the trial slot back
            self._release_trial()
            raise

        self._on_success()
        return result

    def reset(self) -> None:
        """Close the circuit and forget past failures."""
        self._set_state(CircuitState.CLOSED)
        self.consecutive_failures = 0
        self.trial_calls = 0
        self.trial_successes = 0
        self.opened_at = None

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_calls": self.total_calls,
            "rejected_calls": self.rejected_calls,
            "retry_after": round(self.retry_after, 1),
        }

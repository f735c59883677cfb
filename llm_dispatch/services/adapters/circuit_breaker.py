"""Circuit breaker guarding calls to a single adapter."""

import asyncio
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional, TypeVar

from llm_dispatch.config.models import CircuitBreakerOptions
from llm_dispatch.logging.utils import create_event_logger
from llm_dispatch.models.errors import CircuitOpenError


T = TypeVar('T')

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_TRANSITION_EVENTS = {
    CircuitState.OPEN: "circuit_opened",
    CircuitState.HALF_OPEN: "circuit_half_open",
    CircuitState.CLOSED: "circuit_closed",
}


class Admission(NamedTuple):
    """Ticket returned by ``CircuitBreaker.acquire`` for one admitted call.

    ``trial`` is set when the call was admitted while half-open;
    ``generation`` identifies the half-open period it belongs to.
    """
    trial: bool
    generation: int


class CircuitBreaker:
    """Circuit breaker pattern implementation for adapter calls.

    Closed lets traffic through and counts consecutive failures; reaching
    ``failure_threshold`` opens the circuit. Open rejects calls without
    running them until ``reset_timeout_ms`` has elapsed, after which the
    next call moves it to half-open and runs as a trial. Half-open admits
    at most ``half_open_max_calls`` concurrent trials: a successful trial
    closes the circuit, a failed one re-opens it and restarts the cooldown.
    Only trials of the current half-open period can decide it; outcomes of
    calls admitted earlier only update the failure count.

    State is only mutated under an internal lock, so the breaker may be
    shared across tasks and threads.
    """

    def __init__(
        self,
        options: Optional[CircuitBreakerOptions] = None,
        clock: Clock = time.monotonic,
        name: Optional[str] = None
    ):
        self.options = options or CircuitBreakerOptions()
        self.name = name or "circuit"
        self._clock = clock
        self._lock = threading.Lock()
        self._events = create_event_logger("circuit_breaker")

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._half_open_in_flight = 0
        self._generation = 0

    @property
    def state(self) -> CircuitState:
        return self.get_state()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def get_state(self) -> CircuitState:
        """Effective state without side effects.

        An open circuit whose cooldown has elapsed reports ``half_open``:
        the next call will be admitted as a trial.
        """
        with self._lock:
            if self._state == CircuitState.OPEN and self._cooldown_elapsed():
                return CircuitState.HALF_OPEN
            return self._state

    def get_snapshot(self) -> Dict[str, Any]:
        """Get breaker internals as a dictionary."""
        state = self.get_state()
        with self._lock:
            return {
                "name": self.name,
                "state": state.value,
                "consecutive_failures": self._consecutive_failures,
                "opened_at": self._opened_at,
                "half_open_in_flight": self._half_open_in_flight,
            }

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit rejects the call. The operation
                is not invoked.
        """
        admission = self.acquire()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self.release(admission)
            raise
        except Exception:
            self.record_failure(admission)
            raise

        self.record_success(admission)
        return result

    def acquire(self) -> Admission:
        """Admit one call or raise ``CircuitOpenError``.

        Every admitted call must be followed by exactly one of
        ``record_success``, ``record_failure`` or ``release``, passing back
        the returned admission.
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._cooldown_elapsed():
                    raise CircuitOpenError(f"Circuit breaker is open: {self.name}", breaker=self.name)
                self._transition(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_in_flight >= self.options.half_open_max_calls:
                    raise CircuitOpenError(
                        f"Circuit breaker half-open limit reached: {self.name}",
                        breaker=self.name
                    )
                self._half_open_in_flight += 1
                return Admission(trial=True, generation=self._generation)

            return Admission(trial=False, generation=self._generation)

    def record_success(self, admission: Optional[Admission] = None) -> None:
        """Record a successful call."""
        with self._lock:
            self._consecutive_failures = 0
            if self._is_current_trial(admission):
                self._half_open_in_flight = 0
                self._opened_at = None
                self._transition(CircuitState.CLOSED)

    def record_failure(self, admission: Optional[Admission] = None) -> None:
        """Record a failed call."""
        with self._lock:
            self._consecutive_failures += 1

            if self._is_current_trial(admission):
                self._half_open_in_flight = 0
                self._opened_at = self._clock()
                self._transition(CircuitState.OPEN)
            elif (self._state == CircuitState.CLOSED
                  and self._consecutive_failures >= self.options.failure_threshold):
                self._opened_at = self._clock()
                self._transition(CircuitState.OPEN)

    def release(self, admission: Optional[Admission] = None) -> None:
        """Give back an admitted call that finished with no outcome."""
        with self._lock:
            if self._is_current_trial(admission) and self._half_open_in_flight > 0:
                self._half_open_in_flight -= 1

    def reset(self) -> None:
        """Force the circuit closed."""
        with self._lock:
            self._consecutive_failures = 0
            self._opened_at = None
            self._half_open_in_flight = 0
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    def _is_current_trial(self, admission: Optional[Admission]) -> bool:
        return (
            admission is not None
            and admission.trial
            and admission.generation == self._generation
            and self._state == CircuitState.HALF_OPEN
        )

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return (self._clock() - self._opened_at) * 1000 >= self.options.reset_timeout_ms

    def _transition(self, new_state: CircuitState) -> None:
        # Caller holds the lock
        self._state = new_state
        self._generation += 1
        self._events.circuit_transition(
            _TRANSITION_EVENTS[new_state], self.name, self._consecutive_failures
        )

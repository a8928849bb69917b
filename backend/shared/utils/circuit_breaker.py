"""
Circuit breaker pattern for external service calls.

States:
  CLOSED    normal operation; outcomes are recorded in a count-based sliding
            window and the circuit opens once the failure rate crosses the
            threshold over at least ``minimum_calls`` outcomes
  OPEN      calls fail fast without touching the service until the cool-down
            elapses on the injected clock
  HALF_OPEN a limited number of trial calls; one failure reopens the circuit,
            one success closes it

State lives for the process lifetime and is shared by every caller of the
same breaker name. Mutations happen under a plain mutex that is never held
across an await, so the breaker is safe from coroutines and threads alike.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Coroutine, Optional, TypeVar

from shared.utils.logging import get_logger
from shared.utils.metrics import CIRCUIT_STATE, CIRCUIT_TRANSITIONS

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_GAUGE = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and calls are being rejected."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN. Retry after {retry_after:.0f}s.")


class CircuitBreaker:
    """
    Sliding-window circuit breaker.

    Args:
        name: Identifier for logging and metrics.
        window_size: Number of most recent outcomes considered in CLOSED.
        minimum_calls: Outcomes required before the failure rate is evaluated.
        failure_rate_threshold: Failure ratio (0-1] that opens the circuit.
        open_duration_s: Cool-down spent in OPEN before trial calls are allowed.
        half_open_max_calls: Trial calls admitted while HALF_OPEN.
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        name: str,
        window_size: int = 20,
        minimum_calls: int = 5,
        failure_rate_threshold: float = 0.5,
        open_duration_s: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.window_size = window_size
        self.minimum_calls = min(minimum_calls, window_size)
        self.failure_rate_threshold = failure_rate_threshold
        self.open_duration_s = open_duration_s
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._window: deque[bool] = deque(maxlen=window_size)
        self._opened_at: float = 0.0
        self._half_open_calls = 0
        self._lock = threading.Lock()
        CIRCUIT_STATE.labels(name=name).set(_STATE_GAUGE[CircuitState.CLOSED])

    # ── State ───────────────────────────────────────────────────────────

    def _transition(self, new_state: CircuitState) -> None:
        old = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        if new_state != CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        if new_state == CircuitState.CLOSED:
            self._window.clear()
        CIRCUIT_STATE.labels(name=self.name).set(_STATE_GAUGE[new_state])
        CIRCUIT_TRANSITIONS.labels(name=self.name, to_state=new_state.value).inc()
        logger.info(
            "circuit_breaker_transition",
            name=self.name,
            from_state=old.value,
            to_state=new_state.value,
        )

    def _refresh(self) -> None:
        """OPEN -> HALF_OPEN once the cool-down has elapsed. Caller holds the lock."""
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.open_duration_s:
            self._transition(CircuitState.HALF_OPEN)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return self._state

    @property
    def retry_after(self) -> float:
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0.0
            return max(self.open_duration_s - (self._clock() - self._opened_at), 0.0)

    @property
    def failure_rate(self) -> float:
        with self._lock:
            if not self._window:
                return 0.0
            return self._window.count(False) / len(self._window)

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            self._refresh()
            return {
                "name": self.name,
                "state": self._state.value,
                "window_calls": len(self._window),
                "window_failures": self._window.count(False),
                "half_open_calls": self._half_open_calls,
            }

    # ── Admission / outcomes ────────────────────────────────────────────

    def allow_request(self) -> bool:
        """Admission check. Consumes a trial permit when HALF_OPEN."""
        with self._lock:
            self._refresh()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True
            return False

    def release_permit(self) -> None:
        """Give back a trial permit for a call that never reached the service."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
                self._half_open_calls -= 1

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._window.append(True)

    def record_failure(self, exc: Optional[BaseException] = None) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.warning("circuit_breaker_trial_failed", name=self.name, error=str(exc))
                self._transition(CircuitState.OPEN)
                return
            if self._state == CircuitState.OPEN:
                return
            self._window.append(False)
            calls = len(self._window)
            if calls < self.minimum_calls:
                return
            rate = self._window.count(False) / calls
            if rate >= self.failure_rate_threshold:
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_rate=round(rate, 3),
                    calls=calls,
                    error=str(exc) if exc else None,
                )
                self._transition(CircuitState.OPEN)

    async def call(
        self, func: Callable[..., Coroutine[Any, Any, T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run ``func`` through the breaker, raising CircuitBreakerOpen when rejected."""
        if not self.allow_request():
            raise CircuitBreakerOpen(self.name, max(self.retry_after, 1.0))
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            self.record_failure(exc)
            raise
        self.record_success()
        return result


class CircuitBreakerRegistry:
    """One breaker per name, created lazily from shared defaults."""

    def __init__(self, clock: Clock = time.monotonic, **defaults: Any) -> None:
        self._clock = clock
        self._defaults = defaults
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, clock: Clock = time.monotonic) -> "CircuitBreakerRegistry":
        return cls(
            clock=clock,
            window_size=settings.breaker_window_size,
            minimum_calls=settings.breaker_minimum_calls,
            failure_rate_threshold=settings.breaker_failure_rate,
            open_duration_s=settings.breaker_open_duration_s,
            half_open_max_calls=settings.breaker_half_open_max_calls,
        )

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, clock=self._clock, **self._defaults)
                self._breakers[name] = breaker
            return breaker

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [b.stats for b in breakers]

from __future__ import annotations

import time
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, TypeVar

from newsentiment.core.logger import get_logger

log = get_logger("circuit_breaker")

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is refused because the circuit is open."""


@dataclass
class CircuitBreaker:
    """Stops calling a collaborator that keeps failing.

    CLOSED counts consecutive failures; at ``failure_threshold`` the circuit
    OPENs and every call goes to the fallback. After ``recovery_timeout``
    seconds one probe call is let through (HALF_OPEN): success closes the
    circuit, failure opens it again.

    Usage:
        breaker = CircuitBreaker(name="classifier")
        score = breaker.call(lambda: model.classify(text), fallback=lambda: lexicon(text))
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _probe_in_flight: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state != self._state:
            log.info(f"Circuit '{self.name}': {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _admit(self) -> bool:
        # Caller holds the lock
        if self._state == CircuitState.OPEN:
            if self.clock() - self._opened_at < self.recovery_timeout:
                return False
            self._set_state(CircuitState.HALF_OPEN)
        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
        return True

    def call(self, func: Callable[[], T], fallback: Optional[Callable[[], T]] = None) -> T:
        """Run ``func`` unless the circuit is open.

        Raises:
            CircuitOpenError: circuit refused the call and no fallback was given
        """
        with self._lock:
            admitted = self._admit()

        if not admitted:
            if fallback is not None:
                return fallback()
            raise CircuitOpenError(f"Circuit '{self.name}' is open")

        try:
            result = func()
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED)

    def _record_failure(self, error: Exception) -> None:
        with self._lock:
            self._failure_count += 1
            self._probe_in_flight = False
            if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                self._opened_at = self.clock()
                self._set_state(CircuitState.OPEN)
                log.warning(
                    f"Circuit '{self.name}' open after {self._failure_count} failure(s): {error}"
                )

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failureCount": self._failure_count,
                "failureThreshold": self.failure_threshold,
            }

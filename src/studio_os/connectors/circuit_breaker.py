"""Per-connector circuit breaker.

The breaker is the only mutable runtime state outside the audit ledger. It
lives in process memory, is never persisted, and never appears in events.

States:
    CLOSED     calls flow; consecutive failures are counted
    OPEN       calls are refused until the backoff window elapses
    HALF_OPEN  window elapsed; one call at a time is let through as a trial.
               Success closes the breaker, failure re-opens it with a
               doubled window

Backoff for the Nth consecutive open is
min(base_backoff_ms * 2 ** (N - 1), max_backoff_ms).
"""

from __future__ import annotations

import threading
from typing import Any

from studio_os.contracts.enums import CircuitState
from studio_os.core.clock import DEFAULT_CLOCK, Clock


class ConnectorCircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        base_backoff_ms: int = 30_000,
        max_backoff_ms: int = 600_000,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        if base_backoff_ms <= 0 or max_backoff_ms < base_backoff_ms:
            raise ValueError(f"Invalid backoff window: base={base_backoff_ms} max={max_backoff_ms}")
        self._failure_threshold = failure_threshold
        self._base_backoff_ms = base_backoff_ms
        self._max_backoff_ms = max_backoff_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_opens = 0
        self._open_until_ms = 0.0
        self._trial_in_flight = False

    @classmethod
    def from_settings(cls, settings: Any, *, clock: Clock = DEFAULT_CLOCK) -> ConnectorCircuitBreaker:
        """Build from CircuitBreakerSettings."""
        return cls(
            failure_threshold=settings.failure_threshold,
            base_backoff_ms=settings.base_backoff_ms,
            max_backoff_ms=settings.max_backoff_ms,
            clock=clock,
        )

    def _now_ms(self, now_ms: float | None) -> float:
        return now_ms if now_ms is not None else self._clock.monotonic() * 1000

    def backoff_ms(self, opens: int) -> int:
        """Window length for the given consecutive-open count (1-based)."""
        return int(min(self._base_backoff_ms * 2 ** max(0, opens - 1), self._max_backoff_ms))

    def can_attempt(self, now_ms: float | None = None) -> bool:
        """Gate checked before every connector call.

        Leaving OPEN admits exactly one trial call. Every other caller is
        refused until that trial records a success or failure.
        """
        now = self._now_ms(now_ms)
        with self._lock:
            if self._state is CircuitState.OPEN:
                if now < self._open_until_ms:
                    return False
                self._state = CircuitState.HALF_OPEN
            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._trial_in_flight = False
            self._consecutive_failures = 0
            self._consecutive_opens = 0
            self._open_until_ms = 0.0

    def record_failure(self, now_ms: float | None = None) -> None:
        now = self._now_ms(now_ms)
        with self._lock:
            self._trial_in_flight = False
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN or self._consecutive_failures >= self._failure_threshold:
                self._consecutive_opens += 1
                self._state = CircuitState.OPEN
                self._open_until_ms = now + self.backoff_ms(self._consecutive_opens)

    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def describe(self, now_ms: float | None = None) -> dict[str, Any]:
        """Breaker state for error details and logs."""
        now = self._now_ms(now_ms)
        with self._lock:
            return {
                "state": self._state.value,
                "consecutive_failures": self._consecutive_failures,
                "consecutive_opens": self._consecutive_opens,
                "trial_in_flight": self._trial_in_flight,
                "retry_in_ms": max(0, int(self._open_until_ms - now)) if self._state is CircuitState.OPEN else 0,
            }

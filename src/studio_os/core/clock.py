# src/studio_os/core/clock.py
"""Clock abstraction for testable time-dependent logic.

Detector dedupe windows, circuit breaker backoff and idempotency key
derivation all read time through a Clock so tests can control it.

Production code uses SystemClock (the default).
Tests inject MockClock to advance time without sleeping.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract clock.

    Implementations:
    - SystemClock: wall clock + time.monotonic() (production)
    - MockClock: controllable times (testing)
    """

    def now(self) -> datetime:
        """Return the current wall-clock time as a timezone-aware UTC datetime."""
        ...

    def monotonic(self) -> float:
        """Return monotonic time in seconds, for elapsed time and backoff windows."""
        ...


class SystemClock:
    """Production clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(start=datetime(2026, 3, 1, 12, tzinfo=UTC))
        breaker = ConnectorCircuitBreaker(failure_threshold=2, clock=clock)

        breaker.record_failure()
        breaker.record_failure()
        assert not breaker.can_attempt()

        clock.advance(30)  # past the 30s backoff window
        assert breaker.can_attempt()
    """

    def __init__(self, start: datetime | None = None, monotonic_start: float = 0.0) -> None:
        self._now = start if start is not None else datetime(2026, 1, 1, tzinfo=UTC)
        if self._now.tzinfo is None:
            raise ValueError("MockClock start must be timezone-aware")
        self._monotonic = monotonic_start

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        """Advance both wall and monotonic time.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._monotonic += seconds
        self._now += timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        """Set wall time to an absolute value. Monotonic time is untouched."""
        self._now = value


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(moment.timestamp() * 1000)


DEFAULT_CLOCK: Clock = SystemClock()

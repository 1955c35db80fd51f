# src/studio_os/connectors/retry.py
"""Retry wrapper for connector reads, built on tenacity.

Only ConnectorErrors with retryable=True are retried (TIMEOUT, UNAVAILABLE,
UNKNOWN). AUTH, BAD_RESPONSE and READ_ONLY_VIOLATION fail on the first
attempt. Writes are never routed through here: a write is made safe to repeat
by its idempotency key, not by blind retries.

An open circuit breaker raises UNAVAILABLE without touching the transport, so
retries against an open breaker are cheap and end once attempts run out.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog
from tenacity import RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from studio_os.contracts.errors import ConnectorError

if TYPE_CHECKING:
    from studio_os.core.config import ConnectorSettings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: ConnectorError) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")


@dataclass(frozen=True)
class RetryConfig:
    """max_attempts is the TOTAL number of tries, not the number of retries."""

    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    jitter: float = 0.5  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> RetryConfig:
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: ConnectorSettings) -> RetryConfig:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_initial_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ConnectorError) and error.retryable


def call_with_retry(
    operation: Callable[[], T],
    config: RetryConfig,
    *,
    on_retry: Callable[[int, ConnectorError], None] | None = None,
) -> T:
    """Run a connector read, retrying retryable ConnectorErrors.

    Raises:
        MaxRetriesExceeded: If every attempt failed with a retryable error
        ConnectorError: Non-retryable failures, unchanged
    """
    attempt = 0
    last_error: ConnectorError | None = None
    try:
        for attempt_state in Retrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_exponential_jitter(initial=config.base_delay, max=config.max_delay, jitter=config.jitter),
            retry=retry_if_exception(is_retryable),
            reraise=False,
        ):
            with attempt_state:
                attempt = attempt_state.retry_state.attempt_number
                try:
                    return operation()
                except ConnectorError as exc:
                    last_error = exc
                    if exc.retryable:
                        logger.warning("connector_call_retrying", attempt=attempt, code=exc.code.value, error=exc.message)
                        if on_retry is not None:
                            on_retry(attempt, exc)
                    raise
    except RetryError as exc:
        assert last_error is not None, "RetryError without a recorded ConnectorError"
        raise MaxRetriesExceeded(attempt, last_error) from exc

    raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover

"""Connector base class and error classification.

Every external call goes through Connector._guarded_call(), which checks
the circuit breaker first, passes ctx.timeout_ms to the transport, records
the outcome on the breaker, and converts any transport failure into a
classified ConnectorError.

Read-only enforcement lives in Connector.execute() itself, so a caller
that sends intent=write to a read-only connector fails even if it skipped
its own policy checks.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, TypeVar

from studio_os.contracts.connectors import (
    ConnectorContext,
    ConnectorDescriptor,
    ConnectorHealth,
    ConnectorRequest,
    ConnectorResult,
    Transport,
)
from studio_os.contracts.enums import Availability, ConnectorErrorCode, ConnectorIntent, Target
from studio_os.contracts.errors import ConnectorError
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.connectors.circuit_breaker import ConnectorCircuitBreaker

T = TypeVar("T")

# Checked in order; first match wins.
_CLASSIFICATION_RULES: tuple[tuple[re.Pattern[str], ConnectorErrorCode], ...] = (
    (re.compile(r"timeout|timed out", re.IGNORECASE), ConnectorErrorCode.TIMEOUT),
    (re.compile(r"401|403|unauthor", re.IGNORECASE), ConnectorErrorCode.AUTH),
    (re.compile(r"5\d\d|unavailable|econnrefused|connection refused", re.IGNORECASE), ConnectorErrorCode.UNAVAILABLE),
    (re.compile(r"malformed|invalid|parse", re.IGNORECASE), ConnectorErrorCode.BAD_RESPONSE),
)


def classify_connector_error(error: BaseException) -> ConnectorError:
    """Map a raw failure onto the stable connector taxonomy.

    ConnectorErrors pass through unchanged. TimeoutError is TIMEOUT
    regardless of its message.
    """
    if isinstance(error, ConnectorError):
        return error
    message = str(error) or type(error).__name__
    if isinstance(error, TimeoutError):
        return ConnectorError(ConnectorErrorCode.TIMEOUT, message)
    for pattern, code in _CLASSIFICATION_RULES:
        if pattern.search(message):
            return ConnectorError(code, message)
    return ConnectorError(ConnectorErrorCode.UNKNOWN, message)


class Connector(ABC):
    """Adapter to one external system.

    Subclasses declare the descriptor fields as class attributes and
    implement read_status(). Read/write connectors also override _write().
    """

    id: ClassVar[str]
    target: ClassVar[Target]
    version: ClassVar[str]
    read_only: ClassVar[bool]

    def __init__(
        self,
        transport: Transport,
        *,
        circuit_breaker: ConnectorCircuitBreaker | None = None,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._transport = transport
        self._clock = clock
        self._breaker = circuit_breaker if circuit_breaker is not None else ConnectorCircuitBreaker(clock=clock)

    @property
    def descriptor(self) -> ConnectorDescriptor:
        return ConnectorDescriptor(id=self.id, target=self.target, version=self.version, read_only=self.read_only)

    @property
    def circuit_breaker(self) -> ConnectorCircuitBreaker:
        return self._breaker

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock.monotonic() - started) * 1000))

    def _guarded_call(
        self,
        ctx: ConnectorContext,
        path: str,
        request: Mapping[str, Any],
        parse: Callable[[Any], T],
    ) -> T:
        """Breaker-gated transport call.

        Raises:
            ConnectorError: UNAVAILABLE when the breaker is open, otherwise
                the classified transport or parse failure
        """
        if not self._breaker.can_attempt():
            raise ConnectorError(
                ConnectorErrorCode.UNAVAILABLE,
                f"{self.id} connector is in backoff window.",
                True,
                {"circuit": self._breaker.describe()},
            )
        return self._attempt(ctx, path, request, parse)

    def _attempt(
        self,
        ctx: ConnectorContext,
        path: str,
        request: Mapping[str, Any],
        parse: Callable[[Any], T],
    ) -> T:
        """Transport call after the breaker admitted it. Always records the outcome."""
        try:
            result = parse(self._transport(path, request, ctx.timeout_ms))
        except ConnectorError:
            self._breaker.record_failure()
            raise
        except Exception as exc:
            self._breaker.record_failure()
            raise classify_connector_error(exc) from exc
        self._breaker.record_success()
        return result

    def health(self, ctx: ConnectorContext) -> ConnectorHealth:
        """Probe the external system.

        An open breaker yields a degraded result without any network call.

        Raises:
            ConnectorError: If the probe itself fails
        """
        request = {"path": "/health", "request_id": ctx.request_id}
        input_hash = stable_hash(request)
        if not self._breaker.can_attempt():
            return ConnectorHealth(
                connector_id=self.id,
                ok=False,
                latency_ms=0,
                availability=Availability.DEGRADED,
                input_hash=input_hash,
            )
        started = self._clock.monotonic()
        payload = self._attempt(ctx, "/health", request, lambda raw: raw)
        return ConnectorHealth(
            connector_id=self.id,
            ok=True,
            latency_ms=self._elapsed_ms(started),
            availability=Availability.HEALTHY,
            input_hash=input_hash,
            output_hash=stable_hash(payload),
        )

    @abstractmethod
    def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        """Read current state from the external system."""

    def execute(self, ctx: ConnectorContext, request: ConnectorRequest) -> ConnectorResult:
        """Run a read or write request.

        Raises:
            ConnectorError: READ_ONLY_VIOLATION for a write on a read-only connector
        """
        if request.intent is ConnectorIntent.WRITE:
            if self.read_only:
                raise ConnectorError(
                    ConnectorErrorCode.READ_ONLY_VIOLATION,
                    f"{self.id} connector is read-only.",
                    False,
                    {"action": request.action},
                )
            return self._write(ctx, request)
        return self.read_status(ctx, request.input)

    def _write(self, ctx: ConnectorContext, request: ConnectorRequest) -> ConnectorResult:
        raise ConnectorError(
            ConnectorErrorCode.READ_ONLY_VIOLATION,
            f"{self.id} connector does not implement writes.",
            False,
            {"action": request.action},
        )

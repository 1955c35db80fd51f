"""Tests for the Connector base class and error classification."""

from collections.abc import Mapping
from typing import Any

import pytest

from studio_os.contracts.connectors import ConnectorContext, ConnectorRequest, ConnectorResult
from studio_os.contracts.enums import Availability, CircuitState, ConnectorErrorCode, ConnectorIntent, Target
from studio_os.contracts.errors import ConnectorError
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import MockClock
from studio_os.connectors import Connector, ConnectorCircuitBreaker, classify_connector_error

CTX = ConnectorContext(request_id="req-1", timeout_ms=2500)


class EchoConnector(Connector):
    id = "echo"
    target = Target.LOCAL
    version = "0.0.1"
    read_only = True

    def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        request = dict(input)

        def parse(payload: Any) -> ConnectorResult:
            return ConnectorResult(
                request_id=ctx.request_id,
                input_hash=stable_hash(request),
                output_hash=stable_hash(payload),
                payload={"echo": payload},
            )

        return self._guarded_call(ctx, "/echo", request, parse)


class TestClassification:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (RuntimeError("request timed out"), ConnectorErrorCode.TIMEOUT),
            (TimeoutError(), ConnectorErrorCode.TIMEOUT),
            (RuntimeError("HTTP 403 Forbidden"), ConnectorErrorCode.AUTH),
            (RuntimeError("Unauthorized"), ConnectorErrorCode.AUTH),
            (RuntimeError("HTTP 503"), ConnectorErrorCode.UNAVAILABLE),
            (ConnectionRefusedError("connection refused"), ConnectorErrorCode.UNAVAILABLE),
            (ValueError("malformed JSON"), ConnectorErrorCode.BAD_RESPONSE),
            (RuntimeError("something odd"), ConnectorErrorCode.UNKNOWN),
        ],
    )
    def test_codes(self, error: Exception, code: ConnectorErrorCode) -> None:
        assert classify_connector_error(error).code is code

    @pytest.mark.parametrize(
        ("code", "retryable"),
        [
            (ConnectorErrorCode.TIMEOUT, True),
            (ConnectorErrorCode.UNAVAILABLE, True),
            (ConnectorErrorCode.UNKNOWN, True),
            (ConnectorErrorCode.AUTH, False),
            (ConnectorErrorCode.BAD_RESPONSE, False),
        ],
    )
    def test_default_retryability(self, code: ConnectorErrorCode, retryable: bool) -> None:
        assert ConnectorError(code, "x").retryable is retryable

    def test_connector_errors_pass_through(self) -> None:
        error = ConnectorError(ConnectorErrorCode.AUTH, "nope")

        assert classify_connector_error(error) is error


class TestGuardedCall:
    def test_passes_timeout_and_records_success(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/echo"] = {"value": 1}
        connector = EchoConnector(transport, clock=clock)

        result = connector.read_status(CTX, {"q": "x"})

        assert result.payload == {"echo": {"value": 1}}
        assert transport.calls == [("/echo", {"q": "x"}, 2500)]

    def test_failures_open_breaker_and_skip_transport(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/echo"] = RuntimeError("HTTP 503")
        breaker = ConnectorCircuitBreaker(failure_threshold=2, clock=clock)
        connector = EchoConnector(transport, circuit_breaker=breaker, clock=clock)

        for _ in range(2):
            with pytest.raises(ConnectorError):
                connector.read_status(CTX, {})
        with pytest.raises(ConnectorError) as exc_info:
            connector.read_status(CTX, {})

        assert len(transport.calls) == 2
        assert exc_info.value.code is ConnectorErrorCode.UNAVAILABLE
        assert exc_info.value.message == "echo connector is in backoff window."
        assert exc_info.value.details["circuit"]["state"] == "open"

    def test_parse_failure_is_classified(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/echo"] = {"value": 1}

        class BrokenConnector(EchoConnector):
            def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
                def parse(payload: Any) -> ConnectorResult:
                    raise ValueError("invalid payload shape")

                return self._guarded_call(ctx, "/echo", {}, parse)

        with pytest.raises(ConnectorError) as exc_info:
            BrokenConnector(transport, clock=clock).read_status(CTX, {})

        assert exc_info.value.code is ConnectorErrorCode.BAD_RESPONSE


class TestExecute:
    def test_write_to_read_only_connector(self, transport: Any, clock: MockClock) -> None:
        connector = EchoConnector(transport, clock=clock)

        with pytest.raises(ConnectorError) as exc_info:
            connector.execute(CTX, ConnectorRequest(intent=ConnectorIntent.WRITE, action="anything"))

        assert exc_info.value.code is ConnectorErrorCode.READ_ONLY_VIOLATION
        assert exc_info.value.retryable is False
        assert transport.calls == []

    def test_read_routes_to_read_status(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/echo"] = "pong"

        result = EchoConnector(transport, clock=clock).execute(CTX, ConnectorRequest(intent=ConnectorIntent.READ, action="ping"))

        assert result.payload == {"echo": "pong"}

    def test_descriptor(self, transport: Any) -> None:
        descriptor = EchoConnector(transport).descriptor

        assert (descriptor.id, descriptor.target, descriptor.read_only) == ("echo", Target.LOCAL, True)


class TestHealth:
    def test_healthy(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/health"] = {"ok": True}

        health = EchoConnector(transport, clock=clock).health(CTX)

        assert health.ok
        assert health.availability is Availability.HEALTHY
        assert health.output_hash == stable_hash({"ok": True})

    def test_open_breaker_reports_degraded_without_call(self, transport: Any, clock: MockClock) -> None:
        breaker = ConnectorCircuitBreaker(failure_threshold=1, clock=clock)
        breaker.record_failure()

        health = EchoConnector(transport, circuit_breaker=breaker, clock=clock).health(CTX)

        assert not health.ok
        assert health.availability is Availability.DEGRADED
        assert transport.calls == []

    def test_half_open_health_check_closes_breaker(self, transport: Any, clock: MockClock) -> None:
        transport.responses["/health"] = {"ok": True}
        breaker = ConnectorCircuitBreaker(failure_threshold=1, base_backoff_ms=1000, clock=clock)
        breaker.record_failure()
        clock.advance(1)

        health = EchoConnector(transport, circuit_breaker=breaker, clock=clock).health(CTX)

        assert health.ok
        assert transport.paths() == ["/health"]
        assert breaker.state() is CircuitState.CLOSED

    def test_half_open_trial_in_flight_degrades_other_health_checks(self, transport: Any, clock: MockClock) -> None:
        breaker = ConnectorCircuitBreaker(failure_threshold=1, base_backoff_ms=1000, clock=clock)
        breaker.record_failure()
        clock.advance(1)
        assert breaker.can_attempt()

        health = EchoConnector(transport, circuit_breaker=breaker, clock=clock).health(CTX)

        assert health.availability is Availability.DEGRADED
        assert transport.calls == []

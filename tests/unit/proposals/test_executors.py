"""Tests for RoutingActionExecutor."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import pytest

from studio_os.capabilities import CapabilityRegistry
from studio_os.capabilities.defaults import BATCH_CLOSE, HUBITAT_DEVICES_READ, OPS_NOTE_APPEND
from studio_os.connectors import ConnectorRegistry, HubitatConnector, OpsNoteConnector, RetryConfig
from studio_os.contracts.enums import ProposalStatus
from studio_os.contracts.errors import ConnectorError, GuardViolationError
from studio_os.contracts.proposals import Proposal
from studio_os.proposals import RoutingActionExecutor

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
REGISTRY = CapabilityRegistry.default()
FAST_RETRY = RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.001, jitter=0)


def _proposal(capability_id: str, input: dict[str, Any], **overrides: Any) -> Proposal:
    values: dict[str, Any] = {
        "proposal_id": "4c1d2e3f-0000-4000-8000-000000000001",
        "capability_id": capability_id,
        "status": ProposalStatus.APPROVED,
        "owner_uid": "owner-1",
        "tenant_id": "owner-1",
        "rationale": "Record the kiln check",
        "input": input,
        "input_hash": "0" * 64,
        "created_at": NOW,
        "updated_at": NOW,
        "approved_by": "lead-1",
    }
    values.update(overrides)
    return Proposal(**values)


class RecordingWriter:
    def __init__(self) -> None:
        self.applied: list[tuple[str, dict[str, Any], str]] = []
        self.reverted: list[tuple[str, dict[str, Any], str, str]] = []

    def apply(self, capability_id: str, input: Mapping[str, Any], *, idempotency_key: str) -> dict[str, Any]:
        self.applied.append((capability_id, dict(input), idempotency_key))
        return {"written": True}

    def revert(self, capability_id: str, executed: Mapping[str, Any], *, idempotency_key: str, reason: str) -> dict[str, Any]:
        self.reverted.append((capability_id, dict(executed), idempotency_key, reason))
        return {"reverted": True}


@pytest.fixture
def connectors(transport: Any) -> ConnectorRegistry:
    return ConnectorRegistry([OpsNoteConnector(transport), HubitatConnector(transport)])


class TestWritesThroughConnector:
    def test_ops_note_append(self, connectors: ConnectorRegistry, transport: Any) -> None:
        transport.responses["/executeStudioBrainPilotAction"] = {"ok": True, "resourcePointer": {"docId": "note-1"}}
        proposal = _proposal(OPS_NOTE_APPEND, {"resourceId": "batch-9", "note": "Kiln 2 checked"})

        result = RoutingActionExecutor(connectors).execute(
            REGISTRY.get(OPS_NOTE_APPEND),
            proposal,
            idempotency_key="pilot-key-1",
            payload={"actorUid": "lead-1"},
        )

        assert result["connector_id"] == "studio-ops-notes"
        assert result["actionDocId"] == f"{proposal.proposal_id}__pilot-key-1"
        assert result["resourcePointer"] == {"collection": "studioBrainPilotOpsNotes", "docId": "note-1"}
        [(path, body, timeout_ms)] = transport.calls
        assert path == "/executeStudioBrainPilotAction"
        assert timeout_ms == 10_000
        assert body["ownerUid"] == "owner-1"
        assert body["approvedBy"] == "lead-1"
        assert body["actorUid"] == "lead-1"
        assert body["idempotencyKey"] == "pilot-key-1"

    def test_write_failure_is_not_retried(self, connectors: ConnectorRegistry, transport: Any) -> None:
        transport.responses["/executeStudioBrainPilotAction"] = TimeoutError("upstream timed out")
        proposal = _proposal(OPS_NOTE_APPEND, {"resourceId": "batch-9", "note": "Kiln 2 checked"})
        executor = RoutingActionExecutor(connectors, read_retry=FAST_RETRY)

        with pytest.raises(ConnectorError) as exc_info:
            executor.execute(REGISTRY.get(OPS_NOTE_APPEND), proposal, idempotency_key="pilot-key-1", payload={})

        assert exc_info.value.code.value == "TIMEOUT"
        assert len(transport.calls) == 1

    def test_ops_note_rollback(self, connectors: ConnectorRegistry, transport: Any) -> None:
        transport.responses["/rollbackStudioBrainPilotAction"] = {"ok": True, "replayed": True}
        proposal = _proposal(OPS_NOTE_APPEND, {"resourceId": "batch-9", "note": "Kiln 2 checked"}, status=ProposalStatus.EXECUTED)

        result = RoutingActionExecutor(connectors).rollback(
            REGISTRY.get(OPS_NOTE_APPEND),
            proposal,
            idempotency_key="pilot-key-1",
            reason="Note attached to wrong batch",
        )

        assert result["replayed"] is True
        assert transport.calls[0][1]["reason"] == "Note attached to wrong batch"

    def test_unmapped_write_capability(self, connectors: ConnectorRegistry) -> None:
        executor = RoutingActionExecutor(connectors, write_actions={})
        proposal = _proposal(OPS_NOTE_APPEND, {})

        with pytest.raises(GuardViolationError, match="no connector write action"):
            executor.execute(REGISTRY.get(OPS_NOTE_APPEND), proposal, idempotency_key="pilot-key-1", payload={})


class TestReads:
    def test_read_capability_retries(self, connectors: ConnectorRegistry, transport: Any) -> None:
        transport.script("/devices", TimeoutError("slow hub"), TimeoutError("slow hub"))
        transport.responses["/devices"] = {"devices": [{"id": "kiln-sensor", "switch": "on", "battery": 88}]}
        proposal = _proposal(HUBITAT_DEVICES_READ, {})

        result = RoutingActionExecutor(connectors, read_retry=FAST_RETRY).execute(
            REGISTRY.get(HUBITAT_DEVICES_READ),
            proposal,
            idempotency_key="pilot-key-1",
            payload={},
        )

        assert transport.paths() == ["/devices", "/devices", "/devices"]
        assert result["devices"][0]["online"] is True
        assert result["devices"][0]["battery_pct"] == 88

    def test_read_rollback_has_nothing_to_revert(self, connectors: ConnectorRegistry, transport: Any) -> None:
        proposal = _proposal(HUBITAT_DEVICES_READ, {}, status=ProposalStatus.EXECUTED)

        result = RoutingActionExecutor(connectors).rollback(
            REGISTRY.get(HUBITAT_DEVICES_READ), proposal, idempotency_key="pilot-key-1", reason="Not needed anymore"
        )

        assert result["reverted"] is False
        assert transport.calls == []


class TestAuthoritativeWriter:
    def test_capability_without_connector_uses_writer(self, connectors: ConnectorRegistry) -> None:
        writer = RecordingWriter()
        proposal = _proposal(BATCH_CLOSE, {"batchId": "batch-9"}, executed_payload={"batchId": "batch-9"})
        executor = RoutingActionExecutor(connectors, writer)

        assert executor.execute(REGISTRY.get(BATCH_CLOSE), proposal, idempotency_key="k-000001", payload={"note": "x"}) == {
            "written": True
        }
        executor.rollback(REGISTRY.get(BATCH_CLOSE), proposal, idempotency_key="k-000001", reason="Wrong batch closed")

        assert writer.applied == [(BATCH_CLOSE, {"batchId": "batch-9", "note": "x"}, "k-000001")]
        assert writer.reverted == [(BATCH_CLOSE, {"batchId": "batch-9"}, "k-000001", "Wrong batch closed")]

    def test_missing_writer(self, connectors: ConnectorRegistry) -> None:
        with pytest.raises(GuardViolationError, match="no authoritative-store writer"):
            RoutingActionExecutor(connectors).execute(
                REGISTRY.get(BATCH_CLOSE), _proposal(BATCH_CLOSE, {}), idempotency_key="k-000001", payload={}
            )

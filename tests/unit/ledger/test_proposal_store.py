"""Tests for ProposalStore and the idempotency ledger."""

import pytest

from studio_os.contracts.enums import ExecutionKind, ProposalStatus
from studio_os.contracts.errors import LedgerIntegrityError
from studio_os.contracts.proposals import ExecutionResult, Proposal
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import MockClock
from studio_os.ledger import ProposalStore


def _proposal(clock: MockClock, proposal_id: str = "p-1", status: ProposalStatus = ProposalStatus.DRAFT) -> Proposal:
    return Proposal(
        proposal_id=proposal_id,
        capability_id="firestore.ops_note.append",
        status=status,
        owner_uid="owner-1",
        tenant_id="owner-1",
        rationale="Log the kiln check",
        input={"resourceId": "batch-9", "note": "Kiln 2 checked"},
        input_hash=stable_hash({"resourceId": "batch-9", "note": "Kiln 2 checked"}),
        created_at=clock.now(),
        updated_at=clock.now(),
    )


class TestProposals:
    def test_insert_and_get(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        proposal = _proposal(clock)
        proposal_store.insert(proposal)

        assert proposal_store.get("p-1") == proposal
        assert proposal_store.get("missing") is None

    def test_transition_sets_fields(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        proposal_store.insert(_proposal(clock))
        clock.advance(5)

        proposal_store.transition(
            "p-1",
            expected=ProposalStatus.DRAFT,
            new=ProposalStatus.APPROVED,
            at=clock.now(),
            approved_by="lead-1",
            approval_rationale="Checked the batch",
        )
        stored = proposal_store.get("p-1")

        assert stored is not None
        assert stored.status is ProposalStatus.APPROVED
        assert stored.approved_by == "lead-1"
        assert stored.updated_at == clock.now()

    def test_executed_payload_stored_as_json(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        proposal_store.insert(_proposal(clock, status=ProposalStatus.APPROVED))
        proposal_store.transition(
            "p-1",
            expected=ProposalStatus.APPROVED,
            new=ProposalStatus.EXECUTED,
            at=clock.now(),
            idempotency_key="pilot-key-1",
            executed_payload={"actorUid": "lead-1"},
        )
        stored = proposal_store.get("p-1")

        assert stored is not None
        assert stored.executed_payload == {"actorUid": "lead-1"}
        assert stored.idempotency_key == "pilot-key-1"

    def test_transition_is_compare_and_set(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        """A transition from a status the row is no longer in fails."""
        proposal_store.insert(_proposal(clock))
        proposal_store.transition("p-1", expected=ProposalStatus.DRAFT, new=ProposalStatus.REJECTED, at=clock.now())

        with pytest.raises(LedgerIntegrityError):
            proposal_store.transition("p-1", expected=ProposalStatus.DRAFT, new=ProposalStatus.APPROVED, at=clock.now())

    def test_list_filters_by_status(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        proposal_store.insert(_proposal(clock, "p-1"))
        clock.advance(1)
        proposal_store.insert(_proposal(clock, "p-2", ProposalStatus.APPROVED))

        assert [p.proposal_id for p in proposal_store.list_proposals()] == ["p-2", "p-1"]
        assert [p.proposal_id for p in proposal_store.list_proposals(status=ProposalStatus.DRAFT)] == ["p-1"]


class TestExecutionLedger:
    def test_record_and_get(self, proposal_store: ProposalStore, clock: MockClock) -> None:
        proposal_store.insert(_proposal(clock, status=ProposalStatus.APPROVED))
        result = ExecutionResult(
            proposal_id="p-1",
            idempotency_key="pilot-key-1",
            kind=ExecutionKind.EXECUTE,
            status=ProposalStatus.EXECUTED,
            result={"actionDocId": "p-1__pilot-key-1"},
            result_hash=stable_hash({"actionDocId": "p-1__pilot-key-1"}),
            recorded_at=clock.now(),
        )
        proposal_store.record_execution(result)

        assert proposal_store.get_execution("p-1", "pilot-key-1", ExecutionKind.EXECUTE) == result
        assert proposal_store.get_execution("p-1", "pilot-key-1", ExecutionKind.ROLLBACK) is None

    def test_recorded_at_required(self, proposal_store: ProposalStore) -> None:
        with pytest.raises(ValueError, match="recorded_at"):
            proposal_store.record_execution(
                ExecutionResult(
                    proposal_id="p-1",
                    idempotency_key="k",
                    kind=ExecutionKind.EXECUTE,
                    status=ProposalStatus.EXECUTED,
                )
            )

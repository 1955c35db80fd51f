"""Property tests for exactly-once proposal execution.

Invariants:
1. Repeating execute with the same key runs the effect once and returns the same result
2. Each distinct key on an executed proposal is rejected, not re-run
3. The ledger chain stays intact across any mix of repeats
"""

from collections.abc import Mapping
from typing import Any

import pytest
from hypothesis import given
from hypothesis import strategies as st

from studio_os.capabilities import CapabilityRegistry
from studio_os.capabilities.defaults import BATCH_CLOSE
from studio_os.contracts.capabilities import CapabilityDefinition
from studio_os.contracts.enums import ActorType, ProposalStatus
from studio_os.contracts.errors import InvalidTransitionError
from studio_os.contracts.proposals import Actor, Proposal
from studio_os.core.clock import MockClock
from studio_os.ledger import EventStore, LedgerDB, ProposalStore
from studio_os.proposals import ProposalLifecycle

LEAD = Actor(ActorType.STAFF, "lead-1")
keys = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=8, max_size=40)


class CountingExecutor:
    def __init__(self) -> None:
        self.calls = 0

    def execute(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        self.calls += 1
        return {"call": self.calls, "key": idempotency_key}

    def rollback(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        reason: str,
    ) -> dict[str, Any]:
        return {}


class TestExecuteIdempotency:
    @given(key=keys, repeats=st.integers(min_value=1, max_value=4), others=st.lists(keys, max_size=3))
    def test_effect_runs_once(self, clock: MockClock, key: str, repeats: int, others: list[str]) -> None:
        executor = CountingExecutor()
        with LedgerDB.in_memory() as db:
            events = EventStore(db, clock=clock)
            lifecycle = ProposalLifecycle(ProposalStore(db), events, CapabilityRegistry.default(), executor, clock=clock)
            proposal = lifecycle.propose(BATCH_CLOSE, LEAD, "Batch 9 is fired", {"batchId": "batch-9"}, owner_uid="lead-1")
            lifecycle.approve(proposal.proposal_id, LEAD, "Kiln log checked")

            results = [lifecycle.execute(proposal.proposal_id, LEAD, idempotency_key=key) for _ in range(repeats)]
            for other in others:
                if other == key:
                    continue
                with pytest.raises(InvalidTransitionError):
                    lifecycle.execute(proposal.proposal_id, LEAD, idempotency_key=other)

            assert executor.calls == 1
            assert all(result == results[0] for result in results)
            assert results[0].result == {"call": 1, "key": key}
            assert lifecycle.get(proposal.proposal_id).status is ProposalStatus.EXECUTED
            assert events.verify_chain().ok

# src/studio_os/proposals/lifecycle.py
"""ProposalLifecycle: the only path from intent to side effect.

    draft --approve--> approved --execute--> executed --rollback--> rolled_back
    draft --reject---> rejected

Every successful transition appends one ledger event
(`capability.<id>.<verb>`). An attempted transition from the wrong status
appends a single `capability.<id>.transition_rejected` event and raises
InvalidTransitionError. Guard failures (blank rationale, short rollback
reason, kill switch) raise without touching the ledger.

execute and rollback are idempotent per (proposal, key): the first call
records its ExecutionResult, later calls with the same key get the stored
result back without running the effect again.
"""

from __future__ import annotations

import threading
import uuid
import weakref
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import structlog

from studio_os.capabilities.registry import CapabilityRegistry
from studio_os.contracts.capabilities import CapabilityDefinition
from studio_os.contracts.enums import ActorType, ApprovalState, ExecutionKind, ProposalStatus
from studio_os.contracts.errors import GuardViolationError, InvalidTransitionError, ProposalNotFoundError
from studio_os.contracts.events import EventDraft, EventRecord
from studio_os.contracts.proposals import Actor, ExecutionResult, Proposal
from studio_os.core.canonical import stable_hash, to_json_safe
from studio_os.core.clock import DEFAULT_CLOCK, Clock, epoch_ms
from studio_os.core.config import ProposalSettings
from studio_os.ledger.event_store import EventStore
from studio_os.ledger.proposal_store import ProposalStore
from studio_os.proposals.executors import ActionExecutor
from studio_os.proposals.guards import (
    HourlyQuota,
    KillSwitch,
    build_idempotency_key,
    can_approve,
    can_execute,
    can_reject,
    can_rollback,
    require,
)

logger = structlog.get_logger(__name__)

AUTO_APPROVER = "system:auto"
KILL_SWITCH_ACTION = "capability.policy.kill_switch_changed"

_APPROVAL_STATE: dict[ProposalStatus, ApprovalState] = {
    ProposalStatus.DRAFT: ApprovalState.PENDING,
    ProposalStatus.APPROVED: ApprovalState.APPROVED,
    ProposalStatus.EXECUTED: ApprovalState.APPROVED,
    ProposalStatus.ROLLED_BACK: ApprovalState.APPROVED,
    ProposalStatus.REJECTED: ApprovalState.REJECTED,
}


def approval_state_for(status: ProposalStatus) -> ApprovalState:
    return _APPROVAL_STATE[status]


class ProposalLifecycle:
    """Governed state machine over ProposalStore, audited into EventStore.

    Example:
        lifecycle = ProposalLifecycle(proposals, events, registry, executor)
        proposal = lifecycle.propose(OPS_NOTE_APPEND, staff, "Log kiln check", {...}, owner_uid="u1")
        lifecycle.approve(proposal.proposal_id, lead, "Looks right")
        result = lifecycle.execute(proposal.proposal_id, lead)
    """

    def __init__(
        self,
        proposals: ProposalStore,
        events: EventStore,
        registry: CapabilityRegistry,
        executor: ActionExecutor,
        *,
        settings: ProposalSettings | None = None,
        kill_switch: KillSwitch | None = None,
        quota: HourlyQuota | None = None,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._proposals = proposals
        self._events = events
        self._registry = registry
        self._executor = executor
        self._settings = settings or ProposalSettings()
        self._kill_switch = kill_switch or KillSwitch(self._settings.kill_switch)
        self._quota = quota or HourlyQuota()
        self._clock = clock
        # An entry lives only while some caller references its lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def kill_switch(self) -> KillSwitch:
        return self._kill_switch

    # === Locking ===

    def _lock_for(self, proposal_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(proposal_id, threading.Lock())

    @contextmanager
    def _try_lock(self, proposal_id: str) -> Iterator[bool]:
        """Non-blocking acquire; yields whether the lock was taken."""
        lock = self._lock_for(proposal_id)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    # === Reads ===

    def get(self, proposal_id: str) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    def list_proposals(self, *, status: ProposalStatus | None = None, limit: int = 100) -> list[Proposal]:
        return self._proposals.list_proposals(status=status, limit=limit)

    # === Transitions ===

    def propose(
        self,
        capability_id: str,
        actor: Actor,
        rationale: str,
        input: Mapping[str, Any],
        *,
        owner_uid: str,
        tenant_id: str | None = None,
    ) -> Proposal:
        """Create a proposal.

        Capabilities that do not require approval start out approved.

        Raises:
            CapabilityNotFoundError: Unknown capability
            CapabilityBlockedError: Capability has outstanding policy issues
            GuardViolationError: Blank rationale or owner
        """
        capability = self._registry.require_exercisable(capability_id)
        if not rationale.strip():
            raise GuardViolationError("propose", "rationale required")
        if not owner_uid.strip():
            raise GuardViolationError("propose", "owner required")

        now = self._clock.now()
        safe_input = to_json_safe(dict(input))
        auto = not capability.requires_approval
        proposal = Proposal(
            proposal_id=str(uuid.uuid4()),
            capability_id=capability.id,
            status=ProposalStatus.APPROVED if auto else ProposalStatus.DRAFT,
            owner_uid=owner_uid,
            tenant_id=tenant_id or owner_uid,
            rationale=rationale.strip(),
            input=safe_input,
            input_hash=stable_hash(safe_input),
            created_at=now,
            updated_at=now,
        )
        self._proposals.insert(proposal)
        if auto:
            self._proposals.transition(
                proposal.proposal_id,
                expected=ProposalStatus.APPROVED,
                new=ProposalStatus.APPROVED,
                at=now,
                approved_by=AUTO_APPROVER,
                approval_rationale="Capability does not require approval.",
            )
        self._append(
            capability,
            actor,
            "proposal_created",
            proposal.rationale,
            proposal.status,
            proposal,
            input_hash=proposal.input_hash,
            output={"proposal_id": proposal.proposal_id, "status": proposal.status.value},
        )
        logger.info("proposal_created", proposal_id=proposal.proposal_id, capability_id=capability.id, status=proposal.status.value)
        return self.get(proposal.proposal_id)

    def approve(self, proposal_id: str, approved_by: Actor, rationale: str) -> Proposal:
        """Approve a draft.

        Raises:
            ProposalNotFoundError: Unknown proposal
            GuardViolationError: Busy, or blank rationale
            KillSwitchEngagedError: Kill switch engaged
            InvalidTransitionError: Proposal is not a draft
            CapabilityBlockedError: Capability has outstanding policy issues
        """
        with self._try_lock(proposal_id) as acquired:
            proposal = self.get(proposal_id)
            require(
                can_approve(busy=not acquired, disabled=self._kill_switch.engaged, approval_rationale=rationale),
                "approve",
            )
            self._check_status(proposal, approved_by, ProposalStatus.DRAFT, ProposalStatus.APPROVED)
            capability = self._registry.require_exercisable(proposal.capability_id)
            self._proposals.transition(
                proposal_id,
                expected=ProposalStatus.DRAFT,
                new=ProposalStatus.APPROVED,
                at=self._clock.now(),
                approved_by=approved_by.actor_id,
                approval_rationale=rationale.strip(),
            )
            self._append(
                capability,
                approved_by,
                "proposal_approved",
                rationale.strip(),
                ProposalStatus.APPROVED,
                proposal,
                input_hash=proposal.input_hash,
                output={"proposal_id": proposal_id, "status": ProposalStatus.APPROVED.value, "approved_by": approved_by.actor_id},
            )
        logger.info("proposal_approved", proposal_id=proposal_id, approved_by=approved_by.actor_id)
        return self.get(proposal_id)

    def reject(self, proposal_id: str, rejected_by: Actor, reason: str) -> Proposal:
        """Reject a draft. The kill switch does not block rejection.

        Raises:
            ProposalNotFoundError: Unknown proposal
            GuardViolationError: Busy, or blank reason
            InvalidTransitionError: Proposal is not a draft
        """
        with self._try_lock(proposal_id) as acquired:
            proposal = self.get(proposal_id)
            require(can_reject(busy=not acquired, reason=reason), "reject")
            self._check_status(proposal, rejected_by, ProposalStatus.DRAFT, ProposalStatus.REJECTED)
            capability = self._registry.get(proposal.capability_id)
            self._proposals.transition(
                proposal_id,
                expected=ProposalStatus.DRAFT,
                new=ProposalStatus.REJECTED,
                at=self._clock.now(),
                approval_rationale=reason.strip(),
            )
            self._append(
                capability,
                rejected_by,
                "proposal_rejected",
                reason.strip(),
                ProposalStatus.REJECTED,
                proposal,
                input_hash=proposal.input_hash,
                output={"proposal_id": proposal_id, "status": ProposalStatus.REJECTED.value},
            )
        logger.info("proposal_rejected", proposal_id=proposal_id, rejected_by=rejected_by.actor_id)
        return self.get(proposal_id)

    def execute(
        self,
        proposal_id: str,
        actor: Actor,
        idempotency_key: str | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Run the approved proposal's effect once per idempotency key.

        Calls for the same proposal are serialized; a repeat with an
        already-recorded key returns the stored result.

        Raises:
            ProposalNotFoundError: Unknown proposal
            KillSwitchEngagedError: Kill switch engaged
            InvalidTransitionError: Proposal is not approved
            CapabilityBlockedError: Capability has outstanding policy issues
            GuardViolationError: Hourly quota exhausted
        """
        now = self._clock.now()
        key = build_idempotency_key(idempotency_key, proposal_id, epoch_ms(now))
        with self._lock_for(proposal_id):
            proposal = self.get(proposal_id)
            replay = self._proposals.get_execution(proposal_id, key, ExecutionKind.EXECUTE)
            if replay is not None:
                logger.info("execution_replayed", proposal_id=proposal_id, idempotency_key=key)
                return replay

            require(can_execute(busy=False, disabled=self._kill_switch.engaged), "execute")
            self._check_status(proposal, actor, ProposalStatus.APPROVED, ProposalStatus.EXECUTED)
            capability = self._registry.require_exercisable(proposal.capability_id)
            self._consume_quota(capability, actor, now)

            safe_payload = to_json_safe(dict(payload or {}))
            transition_input = {"proposal_id": proposal_id, "idempotency_key": key, "payload": safe_payload}
            try:
                effect = self._executor.execute(capability, proposal, idempotency_key=key, payload=safe_payload)
            except Exception as exc:
                self._append(
                    capability,
                    actor,
                    "execution_failed",
                    f"Execution failed: {exc}",
                    proposal.status,
                    proposal,
                    input_payload=transition_input,
                    extra={"idempotency_key": key, "error_type": type(exc).__name__},
                )
                logger.warning("proposal_execution_failed", proposal_id=proposal_id, error=str(exc))
                raise

            result = to_json_safe(effect)
            executed_at = self._clock.now()
            self._proposals.record_execution(
                ExecutionResult(
                    proposal_id=proposal_id,
                    idempotency_key=key,
                    kind=ExecutionKind.EXECUTE,
                    status=ProposalStatus.EXECUTED,
                    result=result,
                    result_hash=stable_hash(result),
                    recorded_at=executed_at,
                )
            )
            self._proposals.transition(
                proposal_id,
                expected=ProposalStatus.APPROVED,
                new=ProposalStatus.EXECUTED,
                at=executed_at,
                idempotency_key=key,
                executed_payload=safe_payload,
            )
            self._append(
                capability,
                actor,
                "executed",
                proposal.rationale,
                ProposalStatus.EXECUTED,
                proposal,
                input_payload=transition_input,
                output=result,
                extra={"idempotency_key": key, "result_hash": stable_hash(result)},
            )
            recorded = self._proposals.get_execution(proposal_id, key, ExecutionKind.EXECUTE)
        assert recorded is not None
        logger.info("proposal_executed", proposal_id=proposal_id, idempotency_key=key)
        return recorded

    def rollback(self, proposal_id: str, actor: Actor, idempotency_key: str, reason: str) -> ExecutionResult:
        """Revert an executed proposal.

        The rollback key must be at least the configured length; the
        executor receives the key the effect was executed with.

        Raises:
            ProposalNotFoundError: Unknown proposal
            InvalidTransitionError: Proposal is not executed
            KillSwitchEngagedError: Kill switch engaged
            GuardViolationError: Reason or key too short
        """
        key = (idempotency_key or "").strip()
        with self._lock_for(proposal_id):
            proposal = self.get(proposal_id)
            replay = self._proposals.get_execution(proposal_id, key, ExecutionKind.ROLLBACK)
            if replay is not None:
                logger.info("rollback_replayed", proposal_id=proposal_id, idempotency_key=key)
                return replay

            self._check_status(proposal, actor, ProposalStatus.EXECUTED, ProposalStatus.ROLLED_BACK)
            require(
                can_rollback(
                    busy=False,
                    disabled=self._kill_switch.engaged,
                    status=proposal.status,
                    reason=reason,
                    idempotency_key=key,
                    min_reason_length=self._settings.rollback_reason_min_length,
                    min_key_length=self._settings.idempotency_key_min_length,
                ),
                "rollback",
            )
            capability = self._registry.get(proposal.capability_id)
            effect = self._executor.rollback(
                capability,
                proposal,
                idempotency_key=proposal.idempotency_key or key,
                reason=reason.strip(),
            )
            result = to_json_safe(effect)
            rolled_back_at = self._clock.now()
            self._proposals.record_execution(
                ExecutionResult(
                    proposal_id=proposal_id,
                    idempotency_key=key,
                    kind=ExecutionKind.ROLLBACK,
                    status=ProposalStatus.ROLLED_BACK,
                    result=result,
                    result_hash=stable_hash(result),
                    recorded_at=rolled_back_at,
                )
            )
            self._proposals.transition(
                proposal_id,
                expected=ProposalStatus.EXECUTED,
                new=ProposalStatus.ROLLED_BACK,
                at=rolled_back_at,
                rollback_reason=reason.strip(),
            )
            self._append(
                capability,
                actor,
                "rolled_back",
                reason.strip(),
                ProposalStatus.ROLLED_BACK,
                proposal,
                input_payload={"proposal_id": proposal_id, "idempotency_key": key, "reason": reason.strip()},
                output=result,
                extra={"idempotency_key": key, "result_hash": stable_hash(result)},
            )
            recorded = self._proposals.get_execution(proposal_id, key, ExecutionKind.ROLLBACK)
        assert recorded is not None
        logger.info("proposal_rolled_back", proposal_id=proposal_id, idempotency_key=key)
        return recorded

    def set_kill_switch(self, engaged: bool, actor: Actor, rationale: str) -> EventRecord:
        """Engage or release the kill switch, recording who did it and why.

        Raises:
            GuardViolationError: Rationale shorter than the rollback minimum
        """
        if len(rationale.strip()) < self._settings.rollback_reason_min_length:
            raise GuardViolationError("kill_switch", "rationale too short")
        previous = self._kill_switch.set(engaged)
        logger.warning("kill_switch_changed", engaged=engaged, previous=previous, actor_id=actor.actor_id)
        return self._events.append(
            EventDraft(
                actor_type=actor.actor_type,
                actor_id=actor.actor_id,
                action=KILL_SWITCH_ACTION,
                rationale=rationale.strip(),
                approval_state=ApprovalState.APPROVED,
                metadata={"engaged": engaged, "previous": previous},
            ),
            input_payload={"engaged": engaged},
            output_payload={"engaged": engaged, "previous": previous},
        )

    # === Internals ===

    def _check_status(self, proposal: Proposal, actor: Actor, expected: ProposalStatus, attempted: ProposalStatus) -> None:
        if proposal.status is expected:
            return
        capability = self._registry.get(proposal.capability_id)
        self._events.append(
            EventDraft(
                actor_type=actor.actor_type,
                actor_id=actor.actor_id,
                action=f"capability.{capability.id}.transition_rejected",
                rationale=f"Invalid transition {proposal.status.value} -> {attempted.value}",
                target=capability.target,
                approval_state=approval_state_for(proposal.status),
                metadata={
                    "proposal_id": proposal.proposal_id,
                    "from_status": proposal.status.value,
                    "to_status": attempted.value,
                },
            ),
            input_payload={"proposal_id": proposal.proposal_id, "from": proposal.status.value, "to": attempted.value},
        )
        logger.warning(
            "proposal_transition_rejected",
            proposal_id=proposal.proposal_id,
            from_status=proposal.status.value,
            to_status=attempted.value,
        )
        raise InvalidTransitionError(proposal.proposal_id, proposal.status, attempted)

    def _consume_quota(self, capability: CapabilityDefinition, actor: Actor, now: datetime) -> None:
        if capability.max_calls_per_hour is None:
            return
        allowed, retry_after = self._quota.consume(
            f"{actor.actor_id}:{capability.id}",
            capability.max_calls_per_hour,
            now.timestamp(),
        )
        if not allowed:
            raise GuardViolationError("execute", f"hourly quota exhausted; retry after {retry_after}s")

    def _append(
        self,
        capability: CapabilityDefinition,
        actor: Actor,
        verb: str,
        rationale: str,
        status: ProposalStatus,
        proposal: Proposal,
        *,
        input_hash: str | None = None,
        input_payload: Any = None,
        output: Any = None,
        extra: Mapping[str, Any] | None = None,
    ) -> EventRecord:
        draft = EventDraft(
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            action=f"capability.{capability.id}.{verb}",
            rationale=rationale,
            target=capability.target,
            approval_state=approval_state_for(status),
            metadata={
                "proposal_id": proposal.proposal_id,
                "tenant_id": proposal.tenant_id,
                "owner_uid": proposal.owner_uid,
                "status": status.value,
                **(extra or {}),
            },
            input_hash=input_hash,
        )
        if output is None:
            return self._events.append(draft, input_payload=input_payload)
        return self._events.append(draft, input_payload=input_payload, output_payload=output)


def system_actor(actor_id: str = "studio-os") -> Actor:
    return Actor(actor_type=ActorType.SYSTEM, actor_id=actor_id)

"""Repository layer for ledger rows.

Handles the seam between SQLAlchemy rows (strings, naive SQLite
timestamps) and domain objects (strict enums, UTC datetimes). This is NOT
a trust boundary: the ledger is our data, so bad values crash.
"""

from typing import Any

from sqlalchemy.engine import Row as SARow

from studio_os.contracts.enums import (
    ActorType,
    ApprovalState,
    ExecutionKind,
    JobRunStatus,
    ProposalStatus,
    Target,
)
from studio_os.contracts.events import EventRecord
from studio_os.contracts.proposals import ExecutionResult, Proposal
from studio_os.contracts.state import JobRunRecord, StateDiff, StateSnapshot
from studio_os.ledger._helpers import as_utc, load_json


class EventRepository:
    """Repository for EventRecord rows."""

    def load(self, row: SARow[Any]) -> EventRecord:
        return EventRecord(
            event_id=row.event_id,
            sequence=row.sequence,
            created_at=as_utc(row.created_at),
            actor_type=ActorType(row.actor_type),
            actor_id=row.actor_id,
            action=row.action,
            rationale=row.rationale,
            target=Target(row.target),
            approval_state=ApprovalState(row.approval_state),
            input_hash=row.input_hash,
            output_hash=row.output_hash,
            metadata=load_json(row.metadata_json),
            prev_hash=row.prev_hash,
            record_hash=row.record_hash,
        )


class SnapshotRepository:
    def load(self, row: SARow[Any]) -> StateSnapshot:
        return StateSnapshot.from_dict(load_json(row.snapshot_json))


class DiffRepository:
    def load(self, row: SARow[Any]) -> StateDiff:
        return StateDiff.from_dict(load_json(row.diff_json))


class JobRunRepository:
    def load(self, row: SARow[Any]) -> JobRunRecord:
        return JobRunRecord(
            run_id=row.run_id,
            job_name=row.job_name,
            status=JobRunStatus(row.status),
            started_at=as_utc(row.started_at),
            # Explicit None check - completed_at is legitimately absent while running
            completed_at=as_utc(row.completed_at) if row.completed_at is not None else None,
            summary=row.summary,
            error_message=row.error_message,
        )


class ProposalRepository:
    def load(self, row: SARow[Any]) -> Proposal:
        return Proposal(
            proposal_id=row.proposal_id,
            capability_id=row.capability_id,
            status=ProposalStatus(row.status),
            owner_uid=row.owner_uid,
            tenant_id=row.tenant_id,
            rationale=row.rationale,
            input=load_json(row.input_json),
            input_hash=row.input_hash,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
            approved_by=row.approved_by,
            approval_rationale=row.approval_rationale,
            idempotency_key=row.idempotency_key,
            executed_payload=load_json(row.executed_payload_json) if row.executed_payload_json is not None else None,
            rollback_reason=row.rollback_reason,
        )


class ExecutionRepository:
    def load(self, row: SARow[Any]) -> ExecutionResult:
        return ExecutionResult(
            proposal_id=row.proposal_id,
            idempotency_key=row.idempotency_key,
            kind=ExecutionKind(row.kind),
            status=ProposalStatus(row.status),
            result=load_json(row.result_json),
            result_hash=row.result_hash,
            recorded_at=as_utc(row.recorded_at),
        )

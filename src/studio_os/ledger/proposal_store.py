"""Persistence for proposals and the idempotency ledger.

Status changes are compare-and-set: the UPDATE only matches when the row is
still in the expected status, so two racing transitions cannot both win.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import desc, select

from studio_os.contracts.enums import ExecutionKind, ProposalStatus
from studio_os.contracts.proposals import ExecutionResult, Proposal
from studio_os.ledger._database_ops import DatabaseOps
from studio_os.ledger._helpers import as_utc, dump_json
from studio_os.ledger.database import LedgerDB
from studio_os.ledger.repositories import ExecutionRepository, ProposalRepository
from studio_os.ledger.schema import proposal_executions_table, proposals_table


class ProposalStore:
    def __init__(self, db: LedgerDB) -> None:
        self._ops = DatabaseOps(db)
        self._proposals = ProposalRepository()
        self._executions = ExecutionRepository()

    def insert(self, proposal: Proposal) -> None:
        self._ops.execute_insert(
            proposals_table.insert().values(
                proposal_id=proposal.proposal_id,
                capability_id=proposal.capability_id,
                status=proposal.status.value,
                owner_uid=proposal.owner_uid,
                tenant_id=proposal.tenant_id,
                rationale=proposal.rationale,
                input_json=dump_json(proposal.input),
                input_hash=proposal.input_hash,
                created_at=as_utc(proposal.created_at),
                updated_at=as_utc(proposal.updated_at),
            )
        )

    def get(self, proposal_id: str) -> Proposal | None:
        row = self._ops.execute_fetchone(select(proposals_table).where(proposals_table.c.proposal_id == proposal_id))
        return self._proposals.load(row) if row is not None else None

    def list_proposals(self, *, status: ProposalStatus | None = None, limit: int = 100) -> list[Proposal]:
        query = select(proposals_table).order_by(desc(proposals_table.c.created_at)).limit(max(1, limit))
        if status is not None:
            query = query.where(proposals_table.c.status == status.value)
        return [self._proposals.load(row) for row in self._ops.execute_fetchall(query)]

    def transition(
        self,
        proposal_id: str,
        *,
        expected: ProposalStatus,
        new: ProposalStatus,
        at: datetime,
        **fields: Any,
    ) -> None:
        """Move a proposal from `expected` to `new`, setting extra columns.

        Raises:
            LedgerIntegrityError: If the proposal is no longer in `expected`
        """
        values: dict[str, Any] = {"status": new.value, "updated_at": as_utc(at)}
        for name, value in fields.items():
            if name == "executed_payload":
                values["executed_payload_json"] = dump_json(value) if value is not None else None
            else:
                values[name] = value
        self._ops.execute_update(
            proposals_table.update()
            .where(proposals_table.c.proposal_id == proposal_id)
            .where(proposals_table.c.status == expected.value)
            .values(**values)
        )

    # === Idempotency ledger ===

    def get_execution(self, proposal_id: str, idempotency_key: str, kind: ExecutionKind) -> ExecutionResult | None:
        t = proposal_executions_table
        row = self._ops.execute_fetchone(
            select(t).where(t.c.proposal_id == proposal_id).where(t.c.idempotency_key == idempotency_key).where(t.c.kind == kind.value)
        )
        return self._executions.load(row) if row is not None else None

    def record_execution(self, result: ExecutionResult) -> None:
        if result.recorded_at is None:
            raise ValueError("ExecutionResult.recorded_at is required when recording")
        self._ops.execute_insert(
            proposal_executions_table.insert().values(
                proposal_id=result.proposal_id,
                idempotency_key=result.idempotency_key,
                kind=result.kind.value,
                status=result.status.value,
                result_json=dump_json(result.result),
                result_hash=result.result_hash,
                recorded_at=as_utc(result.recorded_at),
            )
        )

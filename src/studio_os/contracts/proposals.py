"""Proposal lifecycle contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from studio_os.contracts.enums import ActorType, ExecutionKind, ProposalStatus


@dataclass(frozen=True)
class Actor:
    """Who is driving a lifecycle transition."""

    actor_type: ActorType
    actor_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.actor_type, ActorType):
            raise TypeError(f"actor_type must be ActorType, got {self.actor_type!r}")
        if not self.actor_id.strip():
            raise ValueError("actor_id must be non-empty")


@dataclass(frozen=True)
class Proposal:
    """A governed request to exercise one capability.

    Strict contract - status must be ProposalStatus enum.
    """

    proposal_id: str
    capability_id: str
    status: ProposalStatus
    owner_uid: str
    tenant_id: str
    rationale: str
    input: dict[str, Any]
    input_hash: str
    created_at: datetime
    updated_at: datetime
    approved_by: str | None = None
    approval_rationale: str | None = None
    idempotency_key: str | None = None
    executed_payload: dict[str, Any] | None = None
    rollback_reason: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, ProposalStatus):
            raise TypeError(f"status must be ProposalStatus, got {type(self.status).__name__}: {self.status!r}")


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of an execute or rollback, as stored in the idempotency ledger.

    A replay with the same key returns this object unchanged.
    """

    proposal_id: str
    idempotency_key: str
    kind: ExecutionKind
    status: ProposalStatus
    result: dict[str, Any] = field(default_factory=dict)
    result_hash: str = ""
    recorded_at: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, ExecutionKind):
            raise TypeError(f"kind must be ExecutionKind, got {self.kind!r}")
        if not isinstance(self.status, ProposalStatus):
            raise TypeError(f"status must be ProposalStatus, got {self.status!r}")


@dataclass(frozen=True)
class GuardResult:
    """Whether a staff action is allowed right now, and why not."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> GuardResult:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> GuardResult:
        return cls(allowed=False, reason=reason)

"""Audit ledger record contracts.

EventDraft is what components hand to the EventStore; EventRecord is what
the store hands back once the record is chained and persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from studio_os.contracts.enums import ActorType, ApprovalState, Target


def _validate_enum(value: object, enum_type: type, field_name: str) -> None:
    """Crash on non-enum values - ledger data is never coerced."""
    if value is not None and not isinstance(value, enum_type):
        raise TypeError(f"{field_name} must be {enum_type.__name__}, got {type(value).__name__}: {value!r}")


GENESIS_HASH = "0" * 64


@dataclass(frozen=True)
class EventDraft:
    """An audit event not yet appended to the ledger.

    input_hash/output_hash may be precomputed by the caller. When they are
    left as None the EventStore derives them from the payloads passed to
    append().
    """

    actor_type: ActorType
    actor_id: str
    action: str
    rationale: str
    target: Target = Target.LOCAL
    approval_state: ApprovalState = ApprovalState.EXEMPT
    metadata: dict[str, Any] = field(default_factory=dict)
    input_hash: str | None = None
    output_hash: str | None = None

    def __post_init__(self) -> None:
        _validate_enum(self.actor_type, ActorType, "actor_type")
        _validate_enum(self.target, Target, "target")
        _validate_enum(self.approval_state, ApprovalState, "approval_state")
        if not self.action or self.action != self.action.strip():
            raise ValueError(f"action must be a non-empty dotted name, got {self.action!r}")


@dataclass(frozen=True)
class EventRecord:
    """One immutable, hash-chained entry in the audit ledger.

    Strict contract - status fields must be enums.
    """

    event_id: str
    sequence: int
    created_at: datetime
    actor_type: ActorType
    actor_id: str
    action: str
    rationale: str
    target: Target
    approval_state: ApprovalState
    input_hash: str
    output_hash: str | None
    metadata: dict[str, Any]
    prev_hash: str
    record_hash: str

    def __post_init__(self) -> None:
        _validate_enum(self.actor_type, ActorType, "actor_type")
        _validate_enum(self.target, Target, "target")
        _validate_enum(self.approval_state, ApprovalState, "approval_state")

    def hash_body(self) -> dict[str, Any]:
        """Fields covered by record_hash (everything except the hash itself)."""
        return {
            "event_id": self.event_id,
            "sequence": self.sequence,
            "created_at": self.created_at,
            "actor_type": self.actor_type.value,
            "actor_id": self.actor_id,
            "action": self.action,
            "rationale": self.rationale,
            "target": self.target.value,
            "approval_state": self.approval_state.value,
            "input_hash": self.input_hash,
            "output_hash": self.output_hash,
            "metadata": self.metadata,
            "prev_hash": self.prev_hash,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.hash_body(), "created_at": self.created_at.isoformat(), "record_hash": self.record_hash}


@dataclass(frozen=True)
class ChainVerification:
    """Result of walking the ledger hash chain."""

    ok: bool
    records_checked: int
    broken_at_sequence: int | None = None
    detail: str | None = None

"""Capability declarations and their governance metadata."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from studio_os.contracts.enums import ApprovalMode, PolicyLintCode, RiskTier, Target


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class CapabilityDefinition:
    """A declared unit of possible action.

    risk may be None only so the linter can report RISK_MISSING for a
    manifest that forgot to declare it. connector_id names the connector
    that performs the effect; None means the authoritative-store writer.
    """

    id: str
    target: Target
    description: str
    risk: RiskTier | None
    read_only: bool
    requires_approval: bool
    connector_id: str | None = None
    max_calls_per_hour: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.target, Target):
            raise TypeError(f"target must be Target, got {self.target!r}")
        if self.risk is not None and not isinstance(self.risk, RiskTier):
            raise TypeError(f"risk must be RiskTier, got {self.risk!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CapabilityDefinition:
        risk = data.get("risk")
        return cls(
            id=data["id"],
            target=Target(data["target"]),
            description=_text(data.get("description")),
            risk=RiskTier(risk) if risk else None,
            read_only=bool(data["read_only"]),
            requires_approval=bool(data["requires_approval"]),
            connector_id=data.get("connector_id"),
            max_calls_per_hour=data.get("max_calls_per_hour"),
        )


@dataclass(frozen=True)
class CapabilityPolicyMetadata:
    """Who owns a capability and how to undo or escalate it.

    approval_mode is None when a manifest omits it or names an unknown mode;
    the linter reports that as APPROVAL_MODE_MISMATCH.
    """

    owner: str
    rollback_plan: str
    escalation_path: str
    approval_mode: ApprovalMode | None

    def __post_init__(self) -> None:
        if self.approval_mode is not None and not isinstance(self.approval_mode, ApprovalMode):
            raise TypeError(f"approval_mode must be ApprovalMode, got {self.approval_mode!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CapabilityPolicyMetadata:
        data = data or {}
        try:
            approval_mode: ApprovalMode | None = ApprovalMode(data.get("approval_mode"))
        except ValueError:
            approval_mode = None
        return cls(
            owner=_text(data.get("owner")),
            rollback_plan=_text(data.get("rollback_plan")),
            escalation_path=_text(data.get("escalation_path")),
            approval_mode=approval_mode,
        )


@dataclass(frozen=True)
class PolicyLintIssue:
    capability_id: str
    code: PolicyLintCode
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"capability_id": self.capability_id, "code": self.code.value, "message": self.message}

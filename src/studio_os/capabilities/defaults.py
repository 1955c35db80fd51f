"""The studio's built-in capability set and its governance metadata."""

from __future__ import annotations

from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata
from studio_os.contracts.enums import ApprovalMode, RiskTier, Target

OPS_NOTE_APPEND = "firestore.ops_note.append"
BATCH_CLOSE = "firestore.batch.close"
FINANCE_RECONCILIATION_ADJUST = "finance.reconciliation.adjust"
HUBITAT_DEVICES_READ = "hubitat.devices.read"
ROBOROCK_DEVICES_READ = "roborock.devices.read"


def default_capabilities() -> list[CapabilityDefinition]:
    return [
        CapabilityDefinition(
            id=OPS_NOTE_APPEND,
            target=Target.CLOUD,
            description="Append a staff-visible pilot ops note to a batch resource.",
            risk=RiskTier.MEDIUM,
            read_only=False,
            requires_approval=True,
            connector_id="studio-ops-notes",
            max_calls_per_hour=8,
        ),
        CapabilityDefinition(
            id=BATCH_CLOSE,
            target=Target.CLOUD,
            description="Close a kiln batch after approved review.",
            risk=RiskTier.HIGH,
            read_only=False,
            requires_approval=True,
            max_calls_per_hour=5,
        ),
        CapabilityDefinition(
            id=FINANCE_RECONCILIATION_ADJUST,
            target=Target.CLOUD,
            description="Apply a staff-reviewed finance reconciliation correction.",
            risk=RiskTier.MEDIUM,
            read_only=False,
            requires_approval=True,
            max_calls_per_hour=5,
        ),
        CapabilityDefinition(
            id=HUBITAT_DEVICES_READ,
            target=Target.LOCAL,
            description="Read connector status for ops dashboard.",
            risk=RiskTier.LOW,
            read_only=True,
            requires_approval=False,
            connector_id="hubitat",
            max_calls_per_hour=120,
        ),
        CapabilityDefinition(
            id=ROBOROCK_DEVICES_READ,
            target=Target.LOCAL,
            description="Read Roborock device status and battery telemetry.",
            risk=RiskTier.LOW,
            read_only=True,
            requires_approval=False,
            connector_id="roborock",
            max_calls_per_hour=120,
        ),
    ]


def default_policy_metadata() -> dict[str, CapabilityPolicyMetadata]:
    return {
        OPS_NOTE_APPEND: CapabilityPolicyMetadata(
            owner="studio-ops",
            rollback_plan="Roll back the proposal; the note is marked rolled back with the operator's reason.",
            escalation_path="studio-ops lead, then studio owner",
            approval_mode=ApprovalMode.REQUIRED,
        ),
        BATCH_CLOSE: CapabilityPolicyMetadata(
            owner="kiln-operations",
            rollback_plan="Reopen the batch from the staff console and restore its previous state.",
            escalation_path="kiln lead, then studio owner",
            approval_mode=ApprovalMode.REQUIRED,
        ),
        FINANCE_RECONCILIATION_ADJUST: CapabilityPolicyMetadata(
            owner="studio-finance",
            rollback_plan="Post a reversing adjustment referencing the original proposal id.",
            escalation_path="finance lead, then studio owner",
            approval_mode=ApprovalMode.REQUIRED,
        ),
        HUBITAT_DEVICES_READ: CapabilityPolicyMetadata(
            owner="studio-ops",
            rollback_plan="Read-only; nothing to roll back.",
            escalation_path="studio-ops lead",
            approval_mode=ApprovalMode.EXEMPT,
        ),
        ROBOROCK_DEVICES_READ: CapabilityPolicyMetadata(
            owner="studio-ops",
            rollback_plan="Read-only; nothing to roll back.",
            escalation_path="studio-ops lead",
            approval_mode=ApprovalMode.EXEMPT,
        ),
    }

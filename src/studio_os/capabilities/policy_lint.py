"""Capability policy linter.

Every capability must carry complete governance metadata before it can be
exercised. Issues are returned, not raised: the registry holds them and
refuses to let a capability with any outstanding issue be used.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata, PolicyLintIssue
from studio_os.contracts.enums import ApprovalMode, PolicyLintCode


def lint_capability_policy(
    capabilities: Iterable[CapabilityDefinition],
    metadata_by_id: Mapping[str, CapabilityPolicyMetadata],
) -> list[PolicyLintIssue]:
    """Check each capability against its policy metadata.

    Rules:
        - metadata must exist (nothing else is checked without it)
        - risk must be declared
        - owner, rollback_plan and escalation_path must be non-blank
        - approval_mode is present and is `required` iff requires_approval
        - a capability that is not read-only must have approval_mode `required`
    """
    issues: list[PolicyLintIssue] = []
    for capability in capabilities:
        cid = capability.id
        metadata = metadata_by_id.get(cid)
        if metadata is None:
            issues.append(PolicyLintIssue(cid, PolicyLintCode.MISSING_METADATA, "Capability policy metadata is missing."))
            continue
        if capability.risk is None:
            issues.append(PolicyLintIssue(cid, PolicyLintCode.RISK_MISSING, "Capability must declare risk tier."))
        if not metadata.owner.strip():
            issues.append(PolicyLintIssue(cid, PolicyLintCode.MISSING_OWNER, "Capability metadata owner is required."))
        if not metadata.rollback_plan.strip():
            issues.append(PolicyLintIssue(cid, PolicyLintCode.MISSING_ROLLBACK_PLAN, "Capability metadata rollback plan is required."))
        if not metadata.escalation_path.strip():
            issues.append(
                PolicyLintIssue(cid, PolicyLintCode.MISSING_ESCALATION_PATH, "Capability metadata escalation path is required.")
            )
        expected_mode = ApprovalMode.REQUIRED if capability.requires_approval else ApprovalMode.EXEMPT
        mode = "<missing or invalid>" if metadata.approval_mode is None else metadata.approval_mode.value
        if metadata.approval_mode is not expected_mode:
            issues.append(
                PolicyLintIssue(
                    cid,
                    PolicyLintCode.APPROVAL_MODE_MISMATCH,
                    f"approval_mode={mode} but capability "
                    f"requires_approval={str(capability.requires_approval).lower()}.",
                )
            )
        if not capability.read_only and metadata.approval_mode is not ApprovalMode.REQUIRED:
            issues.append(
                PolicyLintIssue(cid, PolicyLintCode.WRITE_CAPABILITY_EXEMPT, "Write-capable capability cannot be exempt from approval.")
            )
    return issues

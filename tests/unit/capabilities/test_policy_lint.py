"""Tests for the capability policy linter."""

import pytest

from studio_os.capabilities import default_capabilities, default_policy_metadata, lint_capability_policy
from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata
from studio_os.contracts.enums import ApprovalMode, PolicyLintCode, RiskTier, Target


def _capability(*, read_only: bool = True, requires_approval: bool = False, risk: RiskTier | None = RiskTier.LOW) -> CapabilityDefinition:
    return CapabilityDefinition(
        id="kiln.schedule.read",
        target=Target.LOCAL,
        description="Read kiln schedule",
        risk=risk,
        read_only=read_only,
        requires_approval=requires_approval,
    )


def _metadata(**overrides: object) -> CapabilityPolicyMetadata:
    values: dict = {
        "owner": "kiln-operations",
        "rollback_plan": "Read-only; nothing to roll back.",
        "escalation_path": "kiln lead",
        "approval_mode": ApprovalMode.EXEMPT,
    }
    values.update(overrides)
    return CapabilityPolicyMetadata(**values)


def _codes(capability: CapabilityDefinition, metadata: CapabilityPolicyMetadata | None) -> list[PolicyLintCode]:
    metadata_by_id = {} if metadata is None else {capability.id: metadata}
    return [issue.code for issue in lint_capability_policy([capability], metadata_by_id)]


class TestPolicyLint:
    def test_default_set_is_clean(self) -> None:
        assert lint_capability_policy(default_capabilities(), default_policy_metadata()) == []

    def test_missing_metadata_stops_other_checks(self) -> None:
        assert _codes(_capability(risk=None), None) == [PolicyLintCode.MISSING_METADATA]

    def test_risk_missing(self) -> None:
        assert _codes(_capability(risk=None), _metadata()) == [PolicyLintCode.RISK_MISSING]

    @pytest.mark.parametrize(
        ("field", "code"),
        [
            ("owner", PolicyLintCode.MISSING_OWNER),
            ("rollback_plan", PolicyLintCode.MISSING_ROLLBACK_PLAN),
            ("escalation_path", PolicyLintCode.MISSING_ESCALATION_PATH),
        ],
    )
    def test_blank_metadata_fields(self, field: str, code: PolicyLintCode) -> None:
        assert _codes(_capability(), _metadata(**{field: "   "})) == [code]

    def test_approval_mode_must_match(self) -> None:
        capability = _capability(requires_approval=True)

        issues = lint_capability_policy([capability], {capability.id: _metadata()})

        assert [issue.code for issue in issues] == [PolicyLintCode.APPROVAL_MODE_MISMATCH]
        assert issues[0].message == "approval_mode=exempt but capability requires_approval=true."

    def test_write_capability_cannot_be_exempt(self) -> None:
        codes = _codes(_capability(read_only=False), _metadata())

        assert codes == [PolicyLintCode.WRITE_CAPABILITY_EXEMPT]

    def test_write_capability_with_required_approval_is_clean(self) -> None:
        capability = _capability(read_only=False, requires_approval=True)

        assert _codes(capability, _metadata(approval_mode=ApprovalMode.REQUIRED)) == []

    def test_issue_serializes(self) -> None:
        [issue] = lint_capability_policy([_capability()], {})

        assert issue.to_dict() == {
            "capability_id": "kiln.schedule.read",
            "code": "MISSING_METADATA",
            "message": "Capability policy metadata is missing.",
        }

    def test_missing_approval_mode_is_a_mismatch(self) -> None:
        issues = lint_capability_policy([_capability()], {"kiln.schedule.read": _metadata(approval_mode=None)})

        assert [issue.code for issue in issues] == [PolicyLintCode.APPROVAL_MODE_MISMATCH]
        assert issues[0].message == "approval_mode=<missing or invalid> but capability requires_approval=false."

    def test_missing_approval_mode_on_write_capability(self) -> None:
        codes = _codes(_capability(read_only=False, requires_approval=True), _metadata(approval_mode=None))

        assert codes == [PolicyLintCode.APPROVAL_MODE_MISMATCH, PolicyLintCode.WRITE_CAPABILITY_EXEMPT]


class TestPolicyMetadataFromDict:
    def test_blank_yaml_values_become_empty_strings(self) -> None:
        metadata = CapabilityPolicyMetadata.from_dict({"owner": None, "rollback_plan": None, "escalation_path": None})

        assert (metadata.owner, metadata.rollback_plan, metadata.escalation_path) == ("", "", "")
        assert metadata.approval_mode is None

    @pytest.mark.parametrize("raw_mode", [None, "sometimes", ["required"]])
    def test_unknown_approval_mode_kept_as_none(self, raw_mode: object) -> None:
        metadata = CapabilityPolicyMetadata.from_dict(
            {"owner": "o", "rollback_plan": "r", "escalation_path": "e", "approval_mode": raw_mode}
        )

        assert metadata.approval_mode is None

    def test_null_policy_entry(self) -> None:
        metadata = CapabilityPolicyMetadata.from_dict(None)

        assert _codes(_capability(), metadata) == [
            PolicyLintCode.MISSING_OWNER,
            PolicyLintCode.MISSING_ROLLBACK_PLAN,
            PolicyLintCode.MISSING_ESCALATION_PATH,
            PolicyLintCode.APPROVAL_MODE_MISMATCH,
        ]

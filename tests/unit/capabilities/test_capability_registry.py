"""Tests for CapabilityRegistry."""

import pytest

from studio_os.capabilities import CapabilityRegistry
from studio_os.capabilities.defaults import HUBITAT_DEVICES_READ, OPS_NOTE_APPEND
from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata
from studio_os.contracts.enums import ApprovalMode, PolicyLintCode, RiskTier, Target
from studio_os.contracts.errors import CapabilityBlockedError, CapabilityNotFoundError, RegistryFrozenError

READ_CAPABILITY = CapabilityDefinition(
    id="kiln.schedule.read",
    target=Target.LOCAL,
    description="Read kiln schedule",
    risk=RiskTier.LOW,
    read_only=True,
    requires_approval=False,
)
READ_METADATA = CapabilityPolicyMetadata(
    owner="kiln-operations",
    rollback_plan="Read-only; nothing to roll back.",
    escalation_path="kiln lead",
    approval_mode=ApprovalMode.EXEMPT,
)
UNSAFE_WRITE = CapabilityDefinition(
    id="kiln.schedule.write",
    target=Target.CLOUD,
    description="Rewrite the kiln schedule",
    risk=RiskTier.HIGH,
    read_only=False,
    requires_approval=False,
)


class TestDefaultRegistry:
    def test_default_capabilities_are_exercisable(self) -> None:
        registry = CapabilityRegistry.default()

        assert registry.issues() == []
        assert registry.require_exercisable(OPS_NOTE_APPEND).connector_id == "studio-ops-notes"
        assert registry.require_exercisable(HUBITAT_DEVICES_READ).read_only is True

    def test_list_is_sorted(self) -> None:
        ids = [c.id for c in CapabilityRegistry.default().list_capabilities()]

        assert ids == sorted(ids)
        assert len(ids) == 5


class TestRegistration:
    def test_register_then_freeze(self) -> None:
        registry = CapabilityRegistry()
        registry.register(READ_CAPABILITY, READ_METADATA)

        assert registry.freeze() == []
        assert registry.frozen
        assert registry.metadata_for(READ_CAPABILITY.id) == READ_METADATA

    def test_no_registration_after_freeze(self) -> None:
        registry = CapabilityRegistry.from_definitions([READ_CAPABILITY], {READ_CAPABILITY.id: READ_METADATA})

        with pytest.raises(RegistryFrozenError):
            registry.register(UNSAFE_WRITE)

    def test_freeze_once(self) -> None:
        registry = CapabilityRegistry()
        registry.freeze()

        with pytest.raises(RegistryFrozenError):
            registry.freeze()

    def test_duplicate_id_rejected(self) -> None:
        registry = CapabilityRegistry()
        registry.register(READ_CAPABILITY, READ_METADATA)

        with pytest.raises(ValueError, match="already registered"):
            registry.register(READ_CAPABILITY, READ_METADATA)

    def test_must_freeze_before_use(self) -> None:
        registry = CapabilityRegistry()
        registry.register(READ_CAPABILITY, READ_METADATA)

        with pytest.raises(RuntimeError, match="frozen"):
            registry.require_exercisable(READ_CAPABILITY.id)


class TestExercisable:
    def test_unknown_capability(self) -> None:
        registry = CapabilityRegistry.default()

        with pytest.raises(CapabilityNotFoundError):
            registry.require_exercisable("kiln.unknown")

    def test_lint_issues_block_capability(self) -> None:
        registry = CapabilityRegistry.from_definitions(
            [READ_CAPABILITY, UNSAFE_WRITE],
            {READ_CAPABILITY.id: READ_METADATA, UNSAFE_WRITE.id: READ_METADATA},
        )

        with pytest.raises(CapabilityBlockedError) as exc_info:
            registry.require_exercisable(UNSAFE_WRITE.id)

        assert [issue.code for issue in exc_info.value.issues] == [PolicyLintCode.WRITE_CAPABILITY_EXEMPT]
        assert registry.require_exercisable(READ_CAPABILITY.id) == READ_CAPABILITY

    def test_missing_metadata_blocks(self) -> None:
        registry = CapabilityRegistry.from_definitions([READ_CAPABILITY], {})

        assert [issue.code for issue in registry.issues_for(READ_CAPABILITY.id)] == [PolicyLintCode.MISSING_METADATA]
        with pytest.raises(CapabilityBlockedError):
            registry.require_exercisable(READ_CAPABILITY.id)

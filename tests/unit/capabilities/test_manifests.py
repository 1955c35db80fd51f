"""Tests for signed capability manifests."""

from pathlib import Path
from typing import Any

import pytest
import yaml

from studio_os.capabilities import CapabilityRegistry, load_capability_manifests, read_manifest_file
from studio_os.contracts.enums import ApprovalMode, PolicyLintCode, RiskTier
from studio_os.contracts.errors import ManifestTrustError
from studio_os.core.security.signatures import SignatureVerifier, attach_signature

ANCHORS = {"studio-root": "root-secret"}


def _manifest() -> dict[str, Any]:
    return {
        "id": "studio-pack-1",
        "capabilities": [
            {
                "id": "kiln.schedule.read",
                "target": "local",
                "description": "Read kiln schedule",
                "risk": "low",
                "read_only": True,
                "requires_approval": False,
            }
        ],
        "policy": {
            "kiln.schedule.read": {
                "owner": "kiln-operations",
                "rollback_plan": "Read-only; nothing to roll back.",
                "escalation_path": "kiln lead",
                "approval_mode": "exempt",
            }
        },
    }


class TestLoadManifests:
    def test_signed_manifest_loads(self) -> None:
        signed = attach_signature(_manifest(), key_id="studio-root", key="root-secret")

        capabilities, metadata = load_capability_manifests([signed], SignatureVerifier(ANCHORS))

        assert [c.id for c in capabilities] == ["kiln.schedule.read"]
        assert capabilities[0].risk is RiskTier.LOW
        assert metadata["kiln.schedule.read"].approval_mode is ApprovalMode.EXEMPT

    def test_unsigned_manifest_rejected(self) -> None:
        with pytest.raises(ManifestTrustError, match="MISSING_SIGNATURE_METADATA"):
            load_capability_manifests([_manifest()], SignatureVerifier(ANCHORS))

    def test_one_bad_manifest_rejects_all(self) -> None:
        good = attach_signature(_manifest(), key_id="studio-root", key="root-secret")
        tampered = {**good, "id": "studio-pack-2"}

        with pytest.raises(ManifestTrustError) as exc_info:
            load_capability_manifests([good, tampered], SignatureVerifier(ANCHORS))

        assert exc_info.value.manifest_id == "studio-pack-2"
        assert exc_info.value.reason == "SIGNATURE_MISMATCH"

    def test_registry_from_manifests_includes_defaults(self) -> None:
        signed = attach_signature(_manifest(), key_id="studio-root", key="root-secret")

        registry = CapabilityRegistry.from_manifests([signed], SignatureVerifier(ANCHORS))

        assert registry.require_exercisable("kiln.schedule.read").read_only
        assert registry.require_exercisable("firestore.ops_note.append")
        assert registry.issues() == []

    def test_registry_without_defaults(self) -> None:
        signed = attach_signature(_manifest(), key_id="studio-root", key="root-secret")

        registry = CapabilityRegistry.from_manifests([signed], SignatureVerifier(ANCHORS), include_defaults=False)

        assert [c.id for c in registry.list_capabilities()] == ["kiln.schedule.read"]

    def test_blank_owner_in_yaml_reported_not_raised(self, tmp_path: Path) -> None:
        manifest = _manifest()
        del manifest["policy"]["kiln.schedule.read"]["approval_mode"]
        text = yaml.safe_dump(attach_signature(manifest, key_id="studio-root", key="root-secret"))
        path = tmp_path / "pack.yaml"
        path.write_text(text.replace("owner: kiln-operations", "owner:"), encoding="utf-8")
        blank_owner = read_manifest_file(path)
        resigned = attach_signature(blank_owner, key_id="studio-root", key="root-secret")

        registry = CapabilityRegistry.from_manifests([resigned], SignatureVerifier(ANCHORS), include_defaults=False)

        assert [issue.code for issue in registry.issues_for("kiln.schedule.read")] == [
            PolicyLintCode.MISSING_OWNER,
            PolicyLintCode.APPROVAL_MODE_MISMATCH,
        ]


class TestReadManifestFile:
    def test_yaml_file_survives_signature(self, tmp_path: Path) -> None:
        """A manifest signed, dumped to YAML and read back still verifies."""
        path = tmp_path / "pack.yaml"
        path.write_text(yaml.safe_dump(attach_signature(_manifest(), key_id="studio-root", key="root-secret")), encoding="utf-8")

        manifest = read_manifest_file(path)

        assert SignatureVerifier(ANCHORS).verify(manifest).ok

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "pack.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="must be a mapping"):
            read_manifest_file(path)

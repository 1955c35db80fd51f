# src/studio_os/capabilities/manifests.py
"""Signed capability manifests.

External capability packs are declared in YAML (or JSON) manifests and
signed with a trust-anchor key. A manifest is loaded only after its
signature verifies; there is no "trusted with a warning" mode.

Manifest shape::

    id: studio-pack-1
    capabilities:
      - id: kiln.schedule.read
        target: local
        description: Read kiln schedule
        risk: low
        read_only: true
        requires_approval: false
    policy:
      kiln.schedule.read:
        owner: kiln-operations
        rollback_plan: Read-only; nothing to roll back.
        escalation_path: kiln lead
        approval_mode: exempt
    signatureAlgorithm: hmac-sha256
    signatureKeyId: studio-root
    signature: 4f0c...
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata
from studio_os.contracts.errors import ManifestTrustError
from studio_os.core.security.signatures import SignatureVerifier

logger = structlog.get_logger(__name__)


def read_manifest_file(path: Path | str) -> dict[str, Any]:
    """Parse a manifest file (YAML is a superset of JSON).

    Raises:
        ValueError: If the document is not a mapping
    """
    with Path(path).open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: manifest must be a mapping")
    return data


def load_capability_manifests(
    manifests: Iterable[Mapping[str, Any]],
    verifier: SignatureVerifier,
) -> tuple[list[CapabilityDefinition], dict[str, CapabilityPolicyMetadata]]:
    """Verify and parse manifests.

    Raises:
        ManifestTrustError: If any manifest fails signature verification.
            Nothing from any manifest is returned in that case.
    """
    capabilities: list[CapabilityDefinition] = []
    metadata: dict[str, CapabilityPolicyMetadata] = {}
    for manifest in manifests:
        manifest_id = str(manifest.get("id", "<unnamed>"))
        verification = verifier.verify(manifest)
        if not verification.ok:
            logger.error("manifest_rejected", manifest_id=manifest_id, reason=verification.describe())
            raise ManifestTrustError(manifest_id, verification.describe())
        for raw in manifest.get("capabilities") or []:
            capabilities.append(CapabilityDefinition.from_dict(raw))
        for capability_id, raw in (manifest.get("policy") or {}).items():
            metadata[capability_id] = CapabilityPolicyMetadata.from_dict(raw)
        logger.info("manifest_loaded", manifest_id=manifest_id, key_id=manifest.get("signatureKeyId"))
    return capabilities, metadata

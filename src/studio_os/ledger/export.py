# src/studio_os/ledger/export.py
"""Portable audit export bundles.

A bundle carries ledger rows (newest first, as list_recent returns them)
plus a manifest: per-row hashes, a payload hash over all rows, the time
span, and an optional HMAC-SHA256 signature over the manifest summary.
Anyone holding the bundle (and the signing key, when signed) can verify
it without access to the ledger database.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from studio_os.contracts.errors import AuditBundleError
from studio_os.contracts.events import EventRecord
from studio_os.core.canonical import CANONICAL_VERSION, stable_hash

BUNDLE_SIGNATURE_ALGORITHM = "hmac-sha256"


@dataclass(frozen=True)
class BundleVerification:
    ok: bool
    reason: str | None = None


def _signature_payload(generated_at: str, manifest: Mapping[str, Any]) -> str:
    return stable_hash(
        {
            "generated_at": generated_at,
            "payload_hash": manifest["payload_hash"],
            "row_count": manifest["row_count"],
            "first_at": manifest["first_at"],
            "last_at": manifest["last_at"],
        }
    )


def _sign(key: str, generated_at: str, manifest: Mapping[str, Any]) -> str:
    return hmac.new(key.encode("utf-8"), _signature_payload(generated_at, manifest).encode("utf-8"), hashlib.sha256).hexdigest()


def build_audit_bundle(
    records: Sequence[EventRecord],
    *,
    generated_at: datetime,
    signing_key: str | None = None,
) -> dict[str, Any]:
    """Build an export bundle from ledger records (newest first)."""
    rows = [record.to_dict() for record in records]
    generated = generated_at.isoformat()
    manifest: dict[str, Any] = {
        "canonical_version": CANONICAL_VERSION,
        "row_count": len(rows),
        "payload_hash": stable_hash(rows),
        "row_hashes": [stable_hash(row) for row in rows],
        # rows are newest first
        "first_at": rows[-1]["created_at"] if rows else None,
        "last_at": rows[0]["created_at"] if rows else None,
        "signature": None,
        "signature_algorithm": None,
    }
    if signing_key:
        manifest["signature"] = _sign(signing_key, generated, manifest)
        manifest["signature_algorithm"] = BUNDLE_SIGNATURE_ALGORITHM
    return {"generated_at": generated, "manifest": manifest, "rows": rows}


def verify_audit_bundle(bundle: Mapping[str, Any], signing_key: str | None = None) -> BundleVerification:
    """Verify a bundle's hashes and, when it is signed, its signature."""
    manifest = bundle["manifest"]
    rows = bundle["rows"]
    if stable_hash(rows) != manifest["payload_hash"]:
        return BundleVerification(False, "PAYLOAD_HASH_MISMATCH")
    if [stable_hash(row) for row in rows] != list(manifest["row_hashes"]):
        return BundleVerification(False, "ROW_HASH_MISMATCH")
    if manifest["signature_algorithm"] == BUNDLE_SIGNATURE_ALGORITHM:
        if not signing_key or not manifest["signature"]:
            return BundleVerification(False, "SIGNATURE_KEY_REQUIRED")
        expected = _sign(signing_key, bundle["generated_at"], manifest)
        if not hmac.compare_digest(expected, manifest["signature"]):
            return BundleVerification(False, "SIGNATURE_MISMATCH")
    return BundleVerification(True)


def require_valid_bundle(bundle: Mapping[str, Any], signing_key: str | None = None) -> None:
    """Raise AuditBundleError unless the bundle verifies."""
    result = verify_audit_bundle(bundle, signing_key)
    if not result.ok:
        assert result.reason is not None
        raise AuditBundleError(result.reason)

# src/studio_os/core/security/signatures.py
"""Trust-anchored HMAC signatures for capability manifests.

A manifest carries three signature fields next to its content:

    signatureAlgorithm: "hmac-sha256"
    signatureKeyId:     name of a trust anchor
    signature:          hex or base64url HMAC over the signing payload

The signing payload is the manifest without those three fields, in RFC 8785
canonical JSON form (sorted keys, ES6 numbers). Verification never
partially trusts a manifest: any failure returns ok=False with a reason.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from studio_os.contracts.enums import SignatureFailure
from studio_os.core.canonical import canonical_json, to_json_safe

SUPPORTED_SIGNATURE_ALGORITHM = "hmac-sha256"
SIGNATURE_FIELDS: frozenset[str] = frozenset({"signature", "signatureAlgorithm", "signatureKeyId"})

_HEX_PATTERN = re.compile(r"^[a-fA-F0-9]+$")
_BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9+/_-]+={0,2}$")


@dataclass(frozen=True)
class SignatureVerification:
    """Outcome of verifying one manifest."""

    ok: bool
    reason: SignatureFailure | None = None
    detail: str | None = None

    def describe(self) -> str:
        if self.ok:
            return "ok"
        assert self.reason is not None
        return self.reason.value if self.detail is None else f"{self.reason.value}:{self.detail}"


def manifest_signing_payload(manifest: Mapping[str, Any]) -> bytes:
    """Canonical bytes covered by a manifest signature.

    Raises:
        ValueError: If the manifest holds non-finite numbers or integers
            outside the interoperable range
        TypeError: If the manifest holds values with no JSON form
    """
    unsigned = {key: value for key, value in manifest.items() if key not in SIGNATURE_FIELDS}
    return canonical_json(to_json_safe(unsigned)).encode("utf-8")


def _decode_signature(signature: str) -> bytes | None:
    """Decode a hex or base64url signature. None when it is neither."""
    trimmed = signature.strip()
    if not trimmed:
        return None
    if _HEX_PATTERN.match(trimmed) and len(trimmed) % 2 == 0:
        return bytes.fromhex(trimmed)
    if not _BASE64URL_PATTERN.match(trimmed):
        return None
    normalized = trimmed.rstrip("=").replace("-", "+").replace("_", "/")
    padded = normalized + "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error:
        return None


def sign_manifest(manifest: Mapping[str, Any], key: str) -> str:
    """Compute the hex HMAC-SHA256 signature of a manifest for a trust anchor key."""
    return hmac.new(key.encode("utf-8"), manifest_signing_payload(manifest), hashlib.sha256).hexdigest()


def attach_signature(manifest: Mapping[str, Any], *, key_id: str, key: str) -> dict[str, Any]:
    """Return a copy of manifest carrying a fresh signature for key_id."""
    unsigned = {k: v for k, v in manifest.items() if k not in SIGNATURE_FIELDS}
    return {
        **unsigned,
        "signatureAlgorithm": SUPPORTED_SIGNATURE_ALGORITHM,
        "signatureKeyId": key_id,
        "signature": sign_manifest(unsigned, key),
    }


def parse_trust_anchors(raw: str | None) -> dict[str, str]:
    """Parse trust anchors from a JSON object or ``id=key,id2=key2``.

    Blank ids and blank keys are dropped. Malformed JSON yields no anchors
    rather than a partially parsed set.
    """
    if raw is None or not raw.strip():
        return {}

    trimmed = raw.strip()
    if trimmed.startswith("{"):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError:
            return {}
        if not isinstance(parsed, dict):
            return {}
        anchors: dict[str, str] = {}
        for key_id, value in parsed.items():
            secret = value.strip() if isinstance(value, str) else ""
            if key_id.strip() and secret:
                anchors[key_id.strip()] = secret
        return anchors

    anchors = {}
    for token in trimmed.split(","):
        key_id, sep, secret = token.strip().partition("=")
        if not sep or not key_id.strip() or not secret.strip():
            continue
        anchors[key_id.strip()] = secret.strip()
    return anchors


class SignatureVerifier:
    """Verifies manifest signatures against a fixed set of trust anchors."""

    def __init__(self, trust_anchors: Mapping[str, str]) -> None:
        self._trust_anchors = dict(trust_anchors)

    @property
    def key_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._trust_anchors))

    def verify(self, manifest: Mapping[str, Any]) -> SignatureVerification:
        algorithm = str(manifest.get("signatureAlgorithm") or "").strip().lower()
        key_id = str(manifest.get("signatureKeyId") or "").strip()
        signature = str(manifest.get("signature") or "").strip()

        if not algorithm or not key_id or not signature:
            return SignatureVerification(ok=False, reason=SignatureFailure.MISSING_SIGNATURE_METADATA)
        if algorithm != SUPPORTED_SIGNATURE_ALGORITHM:
            return SignatureVerification(ok=False, reason=SignatureFailure.UNSUPPORTED_SIGNATURE_ALGORITHM, detail=algorithm)

        anchor = self._trust_anchors.get(key_id)
        if not anchor:
            return SignatureVerification(ok=False, reason=SignatureFailure.UNKNOWN_TRUST_ANCHOR, detail=key_id)

        provided = _decode_signature(signature)
        if not provided:
            return SignatureVerification(ok=False, reason=SignatureFailure.INVALID_SIGNATURE_ENCODING)

        try:
            payload = manifest_signing_payload(manifest)
        except (TypeError, ValueError):
            # No canonical form means no signature can cover it
            return SignatureVerification(ok=False, reason=SignatureFailure.SIGNATURE_MISMATCH, detail="uncanonicalizable")

        expected = hmac.new(anchor.encode("utf-8"), payload, hashlib.sha256).digest()
        if not hmac.compare_digest(provided, expected):
            return SignatureVerification(ok=False, reason=SignatureFailure.SIGNATURE_MISMATCH)
        return SignatureVerification(ok=True)

# src/studio_os/core/security/__init__.py
"""Security utilities for Studio OS.

Exports:
- secret_fingerprint / get_fingerprint_key: HMAC fingerprints of secrets
- SignatureVerifier and helpers: trust-anchored manifest signatures
"""

from studio_os.core.security.fingerprint import (
    SecretFingerprintError,
    get_fingerprint_key,
    secret_fingerprint,
)
from studio_os.core.security.signatures import (
    SUPPORTED_SIGNATURE_ALGORITHM,
    SignatureVerification,
    SignatureVerifier,
    attach_signature,
    manifest_signing_payload,
    parse_trust_anchors,
    sign_manifest,
)

__all__ = [
    "SUPPORTED_SIGNATURE_ALGORITHM",
    "SecretFingerprintError",
    "SignatureVerification",
    "SignatureVerifier",
    "attach_signature",
    "get_fingerprint_key",
    "manifest_signing_payload",
    "parse_trust_anchors",
    "secret_fingerprint",
    "sign_manifest",
]

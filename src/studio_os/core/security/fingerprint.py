# src/studio_os/core/security/fingerprint.py
"""Secret fingerprinting using HMAC-SHA256.

Trust-anchor keys and export signing keys must never appear in the audit
ledger or in resolved config. We store a fingerprint instead: it proves the
same key was used without revealing it.

Usage:
    from studio_os.core.security import secret_fingerprint

    fp = secret_fingerprint(anchor_key, key=fingerprint_key)
    fp = secret_fingerprint(anchor_key)  # reads STUDIO_OS_FINGERPRINT_KEY
"""

from __future__ import annotations

import hashlib
import hmac
import os

_ENV_VAR = "STUDIO_OS_FINGERPRINT_KEY"


class SecretFingerprintError(ValueError):
    """Raised when a secret must be fingerprinted but no key is configured."""


def get_fingerprint_key() -> bytes:
    """Read the fingerprint key from the environment.

    Raises:
        SecretFingerprintError: If STUDIO_OS_FINGERPRINT_KEY is not set
    """
    env_key = os.environ.get(_ENV_VAR)
    if env_key:
        return env_key.encode("utf-8")
    raise SecretFingerprintError(f"Fingerprint key not configured. Set {_ENV_VAR}.")


def secret_fingerprint(secret: str, *, key: bytes | None = None) -> str:
    """Compute HMAC-SHA256 fingerprint of a secret.

    Args:
        secret: The secret value to fingerprint
        key: HMAC key. If not provided, reads STUDIO_OS_FINGERPRINT_KEY.

    Returns:
        64-character hex string

    Example:
        >>> fp = secret_fingerprint("anchor-key", key=b"fp-key")
        >>> len(fp)
        64
    """
    if key is None:
        key = get_fingerprint_key()

    return hmac.new(
        key=key,
        msg=secret.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()

"""Property tests for manifest signatures.

Invariants:
1. A manifest signed with a trusted anchor verifies, whatever its key order
2. Changing any signed field after signing is a SIGNATURE_MISMATCH
3. A manifest signed with a different secret never verifies
"""

import string
from typing import Any

from hypothesis import assume, given
from hypothesis import strategies as st

from studio_os.contracts.enums import SignatureFailure
from studio_os.core.security.signatures import SignatureVerifier, attach_signature

ANCHORS = {"studio-root": "root-secret"}

# Lone surrogates have no UTF-8 form
json_text = st.characters(exclude_categories=("Cs",))

json_scalars = st.none() | st.booleans() | st.integers(min_value=-(2**31), max_value=2**31) | st.text(json_text, max_size=12)
json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(json_text, min_size=1, max_size=6), children, max_size=3),
    max_leaves=8,
)
manifests = st.dictionaries(
    st.text(json_text, min_size=1, max_size=8).filter(lambda k: not k.startswith("signature")),
    json_values,
    min_size=1,
    max_size=5,
)


class TestSignatureProperties:
    @given(manifest=manifests)
    def test_signed_manifest_verifies(self, manifest: dict[str, Any]) -> None:
        signed = attach_signature(manifest, key_id="studio-root", key="root-secret")
        reordered = dict(reversed(list(signed.items())))

        assert SignatureVerifier(ANCHORS).verify(signed).ok
        assert SignatureVerifier(ANCHORS).verify(reordered).ok

    @given(manifest=manifests, field=st.text(json_text, min_size=1, max_size=8), value=json_values)
    def test_tampering_detected(self, manifest: dict[str, Any], field: str, value: Any) -> None:
        assume(not field.startswith("signature"))
        assume(manifest.get(field, object()) != value)
        signed = attach_signature(manifest, key_id="studio-root", key="root-secret")

        result = SignatureVerifier(ANCHORS).verify({**signed, field: value})

        assert not result.ok
        assert result.reason is SignatureFailure.SIGNATURE_MISMATCH

    @given(manifest=manifests, secret=st.text(alphabet=string.ascii_letters + string.digits + "-", min_size=1, max_size=16))
    def test_wrong_secret_rejected(self, manifest: dict[str, Any], secret: str) -> None:
        assume(secret != "root-secret")
        signed = attach_signature(manifest, key_id="studio-root", key=secret)

        assert SignatureVerifier(ANCHORS).verify(signed).reason is SignatureFailure.SIGNATURE_MISMATCH

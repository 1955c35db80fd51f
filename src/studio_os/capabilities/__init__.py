"""Capability registry, default capability set, manifests and policy lint."""

from studio_os.capabilities.defaults import default_capabilities, default_policy_metadata
from studio_os.capabilities.manifests import load_capability_manifests, read_manifest_file
from studio_os.capabilities.policy_lint import lint_capability_policy
from studio_os.capabilities.registry import CapabilityRegistry

__all__ = [
    "CapabilityRegistry",
    "default_capabilities",
    "default_policy_metadata",
    "lint_capability_policy",
    "load_capability_manifests",
    "read_manifest_file",
]

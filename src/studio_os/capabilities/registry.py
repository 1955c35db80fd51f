"""CapabilityRegistry: the closed set of actions the engine may take.

Capabilities are registered at startup, then the registry is frozen. Freezing
runs the policy linter once; the resulting issues are held per capability and
any capability with an outstanding issue is refused by require_exercisable().
Nothing can be added after freezing: there is no runtime discovery.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from studio_os.capabilities.defaults import default_capabilities, default_policy_metadata
from studio_os.capabilities.manifests import load_capability_manifests
from studio_os.capabilities.policy_lint import lint_capability_policy
from studio_os.contracts.capabilities import CapabilityDefinition, CapabilityPolicyMetadata, PolicyLintIssue
from studio_os.contracts.errors import CapabilityBlockedError, CapabilityNotFoundError, RegistryFrozenError
from studio_os.core.security.signatures import SignatureVerifier

logger = structlog.get_logger(__name__)


class CapabilityRegistry:
    """Registry of capability definitions and their policy metadata.

    Example:
        registry = CapabilityRegistry()
        registry.register(definition, metadata)
        registry.freeze()
        registry.require_exercisable(definition.id)
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, CapabilityDefinition] = {}
        self._metadata: dict[str, CapabilityPolicyMetadata] = {}
        self._issues: dict[str, tuple[PolicyLintIssue, ...]] | None = None

    @classmethod
    def from_definitions(
        cls,
        capabilities: Iterable[CapabilityDefinition],
        metadata_by_id: Mapping[str, CapabilityPolicyMetadata],
    ) -> CapabilityRegistry:
        """Build and freeze a registry."""
        registry = cls()
        for capability in capabilities:
            registry.register(capability, metadata_by_id.get(capability.id))
        registry.freeze()
        return registry

    @classmethod
    def default(cls) -> CapabilityRegistry:
        return cls.from_definitions(default_capabilities(), default_policy_metadata())

    @classmethod
    def from_manifests(
        cls,
        manifests: Sequence[Mapping[str, Any]],
        verifier: SignatureVerifier,
        *,
        include_defaults: bool = True,
    ) -> CapabilityRegistry:
        """Build a registry from signed manifests (plus the built-in set).

        Raises:
            ManifestTrustError: If any manifest is not trusted
        """
        capabilities, metadata = load_capability_manifests(manifests, verifier)
        if include_defaults:
            capabilities = default_capabilities() + capabilities
            metadata = {**default_policy_metadata(), **metadata}
        return cls.from_definitions(capabilities, metadata)

    @property
    def frozen(self) -> bool:
        return self._issues is not None

    def register(self, capability: CapabilityDefinition, metadata: CapabilityPolicyMetadata | None = None) -> None:
        """Add a capability before startup completes.

        Raises:
            RegistryFrozenError: If the registry has been frozen
            ValueError: If the capability id is already registered
        """
        if self.frozen:
            raise RegistryFrozenError(f"Cannot register {capability.id!r}: registry is frozen")
        if capability.id in self._capabilities:
            raise ValueError(f"Capability {capability.id!r} is already registered")
        self._capabilities[capability.id] = capability
        if metadata is not None:
            self._metadata[capability.id] = metadata

    def freeze(self) -> list[PolicyLintIssue]:
        """Lint every capability and close the registry."""
        if self.frozen:
            raise RegistryFrozenError("Registry is already frozen")
        issues = lint_capability_policy(self._capabilities.values(), self._metadata)
        grouped: dict[str, list[PolicyLintIssue]] = {cid: [] for cid in self._capabilities}
        for issue in issues:
            grouped[issue.capability_id].append(issue)
            logger.warning("capability_policy_issue", capability_id=issue.capability_id, code=issue.code.value)
        self._issues = {cid: tuple(found) for cid, found in grouped.items()}
        logger.info("capability_registry_frozen", capabilities=len(self._capabilities), issues=len(issues))
        return issues

    def _require_frozen(self) -> dict[str, tuple[PolicyLintIssue, ...]]:
        if self._issues is None:
            raise RuntimeError("CapabilityRegistry must be frozen before use")
        return self._issues

    def get(self, capability_id: str) -> CapabilityDefinition:
        """Raises CapabilityNotFoundError for an unknown id."""
        if capability_id not in self._capabilities:
            raise CapabilityNotFoundError(capability_id)
        return self._capabilities[capability_id]

    def metadata_for(self, capability_id: str) -> CapabilityPolicyMetadata | None:
        self.get(capability_id)
        return self._metadata.get(capability_id)

    def list_capabilities(self) -> list[CapabilityDefinition]:
        return [self._capabilities[cid] for cid in sorted(self._capabilities)]

    def issues(self) -> list[PolicyLintIssue]:
        return [issue for cid in sorted(self._capabilities) for issue in self._require_frozen()[cid]]

    def issues_for(self, capability_id: str) -> tuple[PolicyLintIssue, ...]:
        self.get(capability_id)
        return self._require_frozen()[capability_id]

    def require_exercisable(self, capability_id: str) -> CapabilityDefinition:
        """Return the capability if it may be used right now.

        Raises:
            CapabilityNotFoundError: Unknown capability
            CapabilityBlockedError: Capability has outstanding lint issues
        """
        capability = self.get(capability_id)
        issues = self.issues_for(capability_id)
        if issues:
            raise CapabilityBlockedError(capability_id, issues)
        return capability

"""Exception types raised across subsystem boundaries.

Each concern gets its own class so callers (and the staff console) can
branch on the failure without parsing messages.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from studio_os.contracts.enums import (
    RETRYABLE_CONNECTOR_ERRORS,
    ConnectorErrorCode,
    ProposalStatus,
)

if TYPE_CHECKING:
    from studio_os.contracts.capabilities import PolicyLintIssue

# =============================================================================
# Ledger
# =============================================================================


class LedgerIntegrityError(Exception):
    """Raised when the audit ledger is inconsistent.

    Covers writes that affect zero rows and hash chains that fail to
    verify. The ledger is our own data: this is never recoverable.
    """


# =============================================================================
# Connectors
# =============================================================================


class ConnectorError(Exception):
    """Classified connector failure.

    Attributes:
        code: Stable taxonomy code
        retryable: Whether the caller may retry the same call
        details: Extra context (circuit state, action name)
    """

    def __init__(
        self,
        code: ConnectorErrorCode,
        message: str,
        retryable: bool | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = code in RETRYABLE_CONNECTOR_ERRORS if retryable is None else retryable
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# =============================================================================
# Capabilities and manifests
# =============================================================================


class CapabilityNotFoundError(KeyError):
    """Raised when a capability id is not in the registry."""

    def __init__(self, capability_id: str) -> None:
        super().__init__(capability_id)
        self.capability_id = capability_id

    def __str__(self) -> str:
        return f"Unknown capability: {self.capability_id}"


class CapabilityBlockedError(Exception):
    """Raised when a capability has outstanding policy lint issues."""

    def __init__(self, capability_id: str, issues: Sequence[PolicyLintIssue]) -> None:
        self.capability_id = capability_id
        self.issues = tuple(issues)
        codes = ", ".join(issue.code.value for issue in self.issues)
        super().__init__(f"Capability {capability_id!r} is blocked by policy lint: {codes}")


class ManifestTrustError(Exception):
    """Raised when a capability manifest fails signature verification."""

    def __init__(self, manifest_id: str, reason: str) -> None:
        self.manifest_id = manifest_id
        self.reason = reason
        super().__init__(f"Manifest {manifest_id!r} is not trusted: {reason}")


class RegistryFrozenError(Exception):
    """Raised when something tries to register a capability after startup."""


# =============================================================================
# Proposals
# =============================================================================


class ProposalNotFoundError(KeyError):
    """Raised when a proposal id does not exist."""

    def __init__(self, proposal_id: str) -> None:
        super().__init__(proposal_id)
        self.proposal_id = proposal_id

    def __str__(self) -> str:
        return f"Unknown proposal: {self.proposal_id}"


class InvalidTransitionError(Exception):
    """Raised when a proposal state transition is not allowed."""

    def __init__(self, proposal_id: str, from_status: ProposalStatus, to_status: ProposalStatus) -> None:
        self.proposal_id = proposal_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Proposal {proposal_id}: invalid transition {from_status.value} -> {to_status.value}")


class GuardViolationError(Exception):
    """Raised when a staff action fails its guard (rationale, reason, key length)."""

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(f"{action} blocked: {reason}")


class KillSwitchEngagedError(GuardViolationError):
    """Raised when the kill switch disables proposal execution."""

    def __init__(self, action: str) -> None:
        super().__init__(action, "kill switch engaged")


# =============================================================================
# Audit export
# =============================================================================


class AuditBundleError(Exception):
    """Raised when an exported audit bundle fails verification."""

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        message = reason if detail is None else f"{reason}: {detail}"
        super().__init__(message)

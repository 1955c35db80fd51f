"""Shared contracts for Studio OS.

Leaf package: nothing here imports from core, ledger or the engine.
"""

from studio_os.contracts.capabilities import (
    CapabilityDefinition,
    CapabilityPolicyMetadata,
    PolicyLintIssue,
)
from studio_os.contracts.connectors import (
    DEFAULT_CONNECTOR_TIMEOUT_MS,
    ConnectorContext,
    ConnectorDescriptor,
    ConnectorHealth,
    ConnectorRequest,
    ConnectorResult,
    DeviceState,
    Transport,
)
from studio_os.contracts.enums import (
    RETRYABLE_CONNECTOR_ERRORS,
    ActorType,
    ApprovalMode,
    ApprovalState,
    Availability,
    CircuitState,
    Completeness,
    ConnectorErrorCode,
    ConnectorIntent,
    ExecutionKind,
    JobRunStatus,
    MarketingDraftStatus,
    PolicyLintCode,
    ProposalStatus,
    RiskTier,
    Severity,
    SignatureFailure,
    Target,
)
from studio_os.contracts.errors import (
    AuditBundleError,
    CapabilityBlockedError,
    CapabilityNotFoundError,
    ConnectorError,
    GuardViolationError,
    InvalidTransitionError,
    KillSwitchEngagedError,
    LedgerIntegrityError,
    ManifestTrustError,
    ProposalNotFoundError,
    RegistryFrozenError,
)
from studio_os.contracts.events import GENESIS_HASH, ChainVerification, EventDraft, EventRecord
from studio_os.contracts.proposals import Actor, ExecutionResult, GuardResult, Proposal
from studio_os.contracts.state import (
    SNAPSHOT_SCHEMA_VERSION,
    Diagnostics,
    DriftRow,
    DriftThresholds,
    JobRunRecord,
    MetricChange,
    SourceReadResult,
    StateDiff,
    StateSnapshot,
)

__all__ = [
    "DEFAULT_CONNECTOR_TIMEOUT_MS",
    "GENESIS_HASH",
    "RETRYABLE_CONNECTOR_ERRORS",
    "SNAPSHOT_SCHEMA_VERSION",
    "Actor",
    "ActorType",
    "ApprovalMode",
    "ApprovalState",
    "AuditBundleError",
    "Availability",
    "CapabilityBlockedError",
    "CapabilityDefinition",
    "CapabilityNotFoundError",
    "CapabilityPolicyMetadata",
    "ChainVerification",
    "CircuitState",
    "Completeness",
    "ConnectorContext",
    "ConnectorDescriptor",
    "ConnectorError",
    "ConnectorErrorCode",
    "ConnectorHealth",
    "ConnectorIntent",
    "ConnectorRequest",
    "ConnectorResult",
    "DeviceState",
    "Diagnostics",
    "DriftRow",
    "DriftThresholds",
    "EventDraft",
    "EventRecord",
    "ExecutionKind",
    "ExecutionResult",
    "GuardResult",
    "GuardViolationError",
    "InvalidTransitionError",
    "JobRunRecord",
    "JobRunStatus",
    "KillSwitchEngagedError",
    "LedgerIntegrityError",
    "ManifestTrustError",
    "MarketingDraftStatus",
    "MetricChange",
    "PolicyLintCode",
    "PolicyLintIssue",
    "Proposal",
    "ProposalNotFoundError",
    "ProposalStatus",
    "RegistryFrozenError",
    "RiskTier",
    "Severity",
    "SignatureFailure",
    "SourceReadResult",
    "StateDiff",
    "StateSnapshot",
    "Target",
    "Transport",
]

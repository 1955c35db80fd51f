"""All status codes, modes, and kinds used across subsystem boundaries.

Values are the wire/database strings. Records read back from the ledger
are converted to these enums in the repositories; anything else is a bug.
"""

from enum import StrEnum


class ActorType(StrEnum):
    """Who performed an audited action.

    Stored in database (events.actor_type).
    """

    SYSTEM = "system"
    STAFF = "staff"
    AGENT = "agent"


class Target(StrEnum):
    """Where an audited action takes effect.

    Stored in database (events.target).
    """

    LOCAL = "local"
    CLOUD = "cloud"


class ApprovalState(StrEnum):
    """Approval status attached to every event record.

    Stored in database (events.approval_state).
    """

    EXEMPT = "exempt"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Completeness(StrEnum):
    """Whether a snapshot was built from every source without warnings."""

    FULL = "full"
    PARTIAL = "partial"


class RiskTier(StrEnum):
    """Declared risk of exercising a capability."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApprovalMode(StrEnum):
    """Governance approval mode declared in capability policy metadata."""

    REQUIRED = "required"
    EXEMPT = "exempt"


class ProposalStatus(StrEnum):
    """Status of a capability proposal.

    Stored in database (proposals.status).
    """

    DRAFT = "draft"
    APPROVED = "approved"
    EXECUTED = "executed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


class ExecutionKind(StrEnum):
    """Kind of side effect recorded in the idempotency ledger.

    Stored in database (proposal_executions.kind).
    """

    EXECUTE = "execute"
    ROLLBACK = "rollback"


class JobRunStatus(StrEnum):
    """Status of a scheduled job run.

    Stored in database (job_runs.status).
    """

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ConnectorErrorCode(StrEnum):
    """Stable connector failure taxonomy, independent of the transport."""

    TIMEOUT = "TIMEOUT"
    AUTH = "AUTH"
    UNAVAILABLE = "UNAVAILABLE"
    BAD_RESPONSE = "BAD_RESPONSE"
    UNKNOWN = "UNKNOWN"
    READ_ONLY_VIOLATION = "READ_ONLY_VIOLATION"


# Codes a caller may retry. Everything else is a hard failure.
RETRYABLE_CONNECTOR_ERRORS: frozenset[ConnectorErrorCode] = frozenset(
    {
        ConnectorErrorCode.TIMEOUT,
        ConnectorErrorCode.UNAVAILABLE,
        ConnectorErrorCode.UNKNOWN,
    }
)


class ConnectorIntent(StrEnum):
    """Intent of a connector execution request."""

    READ = "read"
    WRITE = "write"


class Availability(StrEnum):
    """Availability reported by a connector health check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class CircuitState(StrEnum):
    """Circuit breaker state. Never persisted."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class PolicyLintCode(StrEnum):
    """Issue codes produced by the capability policy linter."""

    MISSING_METADATA = "MISSING_METADATA"
    MISSING_OWNER = "MISSING_OWNER"
    MISSING_ROLLBACK_PLAN = "MISSING_ROLLBACK_PLAN"
    MISSING_ESCALATION_PATH = "MISSING_ESCALATION_PATH"
    RISK_MISSING = "RISK_MISSING"
    APPROVAL_MODE_MISMATCH = "APPROVAL_MODE_MISMATCH"
    WRITE_CAPABILITY_EXEMPT = "WRITE_CAPABILITY_EXEMPT"


class SignatureFailure(StrEnum):
    """Reasons a signed manifest is refused."""

    MISSING_SIGNATURE_METADATA = "MISSING_SIGNATURE_METADATA"
    UNSUPPORTED_SIGNATURE_ALGORITHM = "UNSUPPORTED_SIGNATURE_ALGORITHM"
    UNKNOWN_TRUST_ANCHOR = "UNKNOWN_TRUST_ANCHOR"
    INVALID_SIGNATURE_ENCODING = "INVALID_SIGNATURE_ENCODING"
    SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"


class Severity(StrEnum):
    """Severity of a detector draft."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MarketingDraftStatus(StrEnum):
    """Review status of a marketing copy draft."""

    DRAFT = "draft"
    NEEDS_REVIEW = "needs_review"
    APPROVED_FOR_PUBLISH = "approved_for_publish"

"""Ledger: the durable audit trail and derived-state storage.

Exports:
- LedgerDB: database connection manager
- EventStore: append-only hash-chained audit ledger
- StateStore: snapshots, diffs and job runs
- ProposalStore: proposals and the idempotency ledger
- build_audit_bundle / verify_audit_bundle: portable audit exports
"""

from studio_os.ledger.database import LedgerDB
from studio_os.ledger.event_store import EventStore, has_recent_event
from studio_os.ledger.export import BundleVerification, build_audit_bundle, require_valid_bundle, verify_audit_bundle
from studio_os.ledger.proposal_store import ProposalStore
from studio_os.ledger.state_store import StateStore

__all__ = [
    "BundleVerification",
    "EventStore",
    "LedgerDB",
    "ProposalStore",
    "StateStore",
    "build_audit_bundle",
    "has_recent_event",
    "require_valid_bundle",
    "verify_audit_bundle",
]

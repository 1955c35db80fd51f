# src/studio_os/ledger/schema.py
"""SQLAlchemy table definitions for the Studio OS ledger.

Uses SQLAlchemy Core (not ORM) for explicit control over queries and
compatibility with SQLite and PostgreSQL.

events is append-only: nothing in the codebase issues UPDATE or DELETE
against it. Snapshots and diffs are insert-only as well; proposals are
the one mutable table, and every change to them is mirrored by an event.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

# === Audit ledger ===

events_table = Table(
    "events",
    metadata,
    Column("event_id", String(64), primary_key=True),
    Column("sequence", Integer, nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("actor_type", String(16), nullable=False),
    Column("actor_id", String(128), nullable=False),
    Column("action", String(128), nullable=False),
    Column("rationale", Text, nullable=False),
    Column("target", String(16), nullable=False),
    Column("approval_state", String(16), nullable=False),
    Column("input_hash", String(64), nullable=False),
    Column("output_hash", String(64)),
    Column("metadata_json", Text, nullable=False),
    # Hash chain: prev_hash is the previous record's record_hash
    Column("prev_hash", String(64), nullable=False),
    Column("record_hash", String(64), nullable=False, unique=True),
)

Index("ix_events_action_created", events_table.c.action, events_table.c.created_at)

# === Derived state ===

snapshots_table = Table(
    "studio_state_snapshots",
    metadata,
    Column("snapshot_date", String(10), primary_key=True),
    Column("generated_at", DateTime(timezone=True), nullable=False),
    Column("schema_version", String(16), nullable=False),
    Column("completeness", String(16), nullable=False),
    Column("snapshot_json", Text, nullable=False),
    Column("snapshot_hash", String(64), nullable=False),
)

diffs_table = Table(
    "studio_state_diffs",
    metadata,
    Column("from_snapshot_date", String(10), nullable=False),
    Column("to_snapshot_date", String(10), ForeignKey("studio_state_snapshots.snapshot_date"), nullable=False),
    Column("diff_json", Text, nullable=False),
    Column("diff_hash", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("from_snapshot_date", "to_snapshot_date"),
)

job_runs_table = Table(
    "job_runs",
    metadata,
    Column("run_id", String(64), primary_key=True),
    Column("job_name", String(64), nullable=False),
    Column("status", String(16), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    Column("summary", Text),
    Column("error_message", Text),
)

Index("ix_job_runs_started", job_runs_table.c.started_at)

# === Proposals ===

proposals_table = Table(
    "proposals",
    metadata,
    Column("proposal_id", String(64), primary_key=True),
    Column("capability_id", String(128), nullable=False),
    Column("status", String(16), nullable=False),
    Column("owner_uid", String(128), nullable=False),
    Column("tenant_id", String(128), nullable=False),
    Column("rationale", Text, nullable=False),
    Column("input_json", Text, nullable=False),
    Column("input_hash", String(64), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("approved_by", String(128)),
    Column("approval_rationale", Text),
    Column("idempotency_key", String(128)),
    Column("executed_payload_json", Text),
    Column("rollback_reason", Text),
)

# Idempotency ledger: one row per (proposal, key, kind). A repeat call with
# the same key replays the stored result instead of re-running the effect.
proposal_executions_table = Table(
    "proposal_executions",
    metadata,
    Column("proposal_id", String(64), ForeignKey("proposals.proposal_id"), nullable=False),
    Column("idempotency_key", String(128), nullable=False),
    Column("kind", String(16), nullable=False),
    Column("status", String(16), nullable=False),
    Column("result_json", Text, nullable=False),
    Column("result_hash", String(64), nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("proposal_id", "idempotency_key", "kind"),
)

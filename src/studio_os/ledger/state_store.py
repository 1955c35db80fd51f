"""Persistence for snapshots, diffs and job runs.

Snapshots are insert-only and keyed by date: the first snapshot stored for
a date is the one of record. A later pass on the same date compares
against it (drift) but never overwrites it.
"""

from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError

from studio_os.contracts.enums import JobRunStatus
from studio_os.contracts.state import JobRunRecord, StateDiff, StateSnapshot
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.ledger._database_ops import DatabaseOps
from studio_os.ledger._helpers import as_utc, dump_json, generate_id
from studio_os.ledger.database import LedgerDB
from studio_os.ledger.repositories import DiffRepository, JobRunRepository, SnapshotRepository
from studio_os.ledger.schema import diffs_table, job_runs_table, snapshots_table


class StateStore:
    """Snapshots, diffs and job-run bookkeeping."""

    def __init__(self, db: LedgerDB, *, clock: Clock = DEFAULT_CLOCK) -> None:
        self._db = db
        self._ops = DatabaseOps(db)
        self._clock = clock
        self._snapshots = SnapshotRepository()
        self._diffs = DiffRepository()
        self._job_runs = JobRunRepository()

    # === Snapshots ===

    def save_snapshot(self, snapshot: StateSnapshot) -> bool:
        """Persist a snapshot if none exists for its date.

        Returns:
            True if stored, False if a snapshot for that date already exists
        """
        document = snapshot.to_dict()
        try:
            self._ops.execute_insert(
                snapshots_table.insert().values(
                    snapshot_date=snapshot.snapshot_date,
                    generated_at=as_utc(snapshot.generated_at),
                    schema_version=snapshot.schema_version,
                    completeness=snapshot.diagnostics.completeness.value,
                    snapshot_json=dump_json(document),
                    snapshot_hash=stable_hash(document),
                )
            )
        except IntegrityError:
            return False
        return True

    def get_snapshot(self, snapshot_date: str) -> StateSnapshot | None:
        row = self._ops.execute_fetchone(select(snapshots_table).where(snapshots_table.c.snapshot_date == snapshot_date))
        return self._snapshots.load(row) if row is not None else None

    def get_latest_snapshot(self) -> StateSnapshot | None:
        row = self._ops.execute_fetchone(select(snapshots_table).order_by(desc(snapshots_table.c.snapshot_date)).limit(1))
        return self._snapshots.load(row) if row is not None else None

    def get_previous_snapshot(self, before_date: str) -> StateSnapshot | None:
        """Latest snapshot strictly before a date (ISO dates sort lexically)."""
        row = self._ops.execute_fetchone(
            select(snapshots_table)
            .where(snapshots_table.c.snapshot_date < before_date)
            .order_by(desc(snapshots_table.c.snapshot_date))
            .limit(1)
        )
        return self._snapshots.load(row) if row is not None else None

    # === Diffs ===

    def save_diff(self, diff: StateDiff) -> bool:
        """Persist a diff once per (from, to) pair. False if it already exists."""
        document = diff.to_dict()
        try:
            self._ops.execute_insert(
                diffs_table.insert().values(
                    from_snapshot_date=diff.from_snapshot_date,
                    to_snapshot_date=diff.to_snapshot_date,
                    diff_json=dump_json(document),
                    diff_hash=stable_hash(document),
                    created_at=as_utc(self._clock.now()),
                )
            )
        except IntegrityError:
            return False
        return True

    def get_latest_diff(self) -> StateDiff | None:
        row = self._ops.execute_fetchone(
            select(diffs_table).order_by(desc(diffs_table.c.to_snapshot_date), desc(diffs_table.c.created_at)).limit(1)
        )
        return self._diffs.load(row) if row is not None else None

    # === Job runs ===

    def start_job_run(self, job_name: str) -> JobRunRecord:
        record = JobRunRecord(
            run_id=generate_id(),
            job_name=job_name,
            status=JobRunStatus.RUNNING,
            started_at=as_utc(self._clock.now()),
        )
        self._ops.execute_insert(
            job_runs_table.insert().values(
                run_id=record.run_id,
                job_name=record.job_name,
                status=record.status.value,
                started_at=record.started_at,
            )
        )
        return record

    def complete_job_run(self, run_id: str, summary: str) -> None:
        self._finish_job_run(run_id, JobRunStatus.SUCCEEDED, summary=summary)

    def fail_job_run(self, run_id: str, error_message: str) -> None:
        self._finish_job_run(run_id, JobRunStatus.FAILED, error_message=error_message)

    def _finish_job_run(
        self,
        run_id: str,
        status: JobRunStatus,
        *,
        summary: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self._ops.execute_update(
            job_runs_table.update()
            .where(job_runs_table.c.run_id == run_id)
            .where(job_runs_table.c.status == JobRunStatus.RUNNING.value)
            .values(
                status=status.value,
                completed_at=as_utc(self._clock.now()),
                summary=summary,
                error_message=error_message,
            )
        )

    def list_recent_job_runs(self, limit: int) -> list[JobRunRecord]:
        rows = self._ops.execute_fetchall(select(job_runs_table).order_by(desc(job_runs_table.c.started_at)).limit(max(1, limit)))
        return [self._job_runs.load(row) for row in rows]

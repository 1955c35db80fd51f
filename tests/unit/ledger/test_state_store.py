"""Tests for StateStore: snapshots, diffs and job runs."""

from collections.abc import Callable

import pytest

from studio_os.contracts.enums import Completeness, JobRunStatus
from studio_os.contracts.errors import LedgerIntegrityError
from studio_os.contracts.state import StateSnapshot
from studio_os.core.clock import MockClock
from studio_os.ledger import StateStore
from studio_os.state import compute_diff


class TestSnapshots:
    def test_save_and_load_round_trip(self, state_store: StateStore, snapshot_factory: Callable[..., StateSnapshot]) -> None:
        snapshot = snapshot_factory(
            {"counts.batchesActive": 12, "finance.unsettledPayments": 2.5},
            cloud_sync={"stripe": "2026-03-02T10:00:00+00:00"},
            completeness=Completeness.PARTIAL,
            warnings=("orders: timed out",),
        )

        assert state_store.save_snapshot(snapshot) is True
        loaded = state_store.get_snapshot(snapshot.snapshot_date)

        assert loaded == snapshot

    def test_snapshot_is_insert_only(self, state_store: StateStore, snapshot_factory: Callable[..., StateSnapshot]) -> None:
        """A second snapshot for the same date is not stored."""
        state_store.save_snapshot(snapshot_factory({"a": 1}))

        assert state_store.save_snapshot(snapshot_factory({"a": 2})) is False
        stored = state_store.get_snapshot("2026-03-02")
        assert stored is not None
        assert stored.metrics == {"a": 1}

    def test_latest_and_previous(self, state_store: StateStore, snapshot_factory: Callable[..., StateSnapshot]) -> None:
        for day in ("2026-02-27", "2026-03-01", "2026-03-02"):
            state_store.save_snapshot(snapshot_factory({"a": 1}, snapshot_date=day))

        latest = state_store.get_latest_snapshot()
        previous = state_store.get_previous_snapshot("2026-03-02")

        assert latest is not None and latest.snapshot_date == "2026-03-02"
        assert previous is not None and previous.snapshot_date == "2026-03-01"
        assert state_store.get_previous_snapshot("2026-02-27") is None

    def test_empty_store(self, state_store: StateStore) -> None:
        assert state_store.get_latest_snapshot() is None
        assert state_store.get_latest_diff() is None


class TestDiffs:
    def test_save_and_load_latest_diff(self, state_store: StateStore, snapshot_factory: Callable[..., StateSnapshot]) -> None:
        previous = snapshot_factory({"a": 1, "b": 2}, snapshot_date="2026-03-01")
        current = snapshot_factory({"a": 3, "b": 2})
        state_store.save_snapshot(previous)
        state_store.save_snapshot(current)
        diff = compute_diff(previous, current)
        assert diff is not None

        assert state_store.save_diff(diff) is True
        assert state_store.save_diff(diff) is False
        loaded = state_store.get_latest_diff()

        assert loaded is not None
        assert loaded.changes["a"].from_value == 1
        assert loaded.changes["a"].to_value == 3
        assert "b" not in loaded.changes


class TestJobRuns:
    def test_start_and_complete(self, state_store: StateStore) -> None:
        run = state_store.start_job_run("compute_studio_state")
        state_store.complete_job_run(run.run_id, "snapshot=2026-03-02")

        [stored] = state_store.list_recent_job_runs(5)
        assert stored.run_id == run.run_id
        assert stored.status is JobRunStatus.SUCCEEDED
        assert stored.summary == "snapshot=2026-03-02"
        assert stored.completed_at is not None

    def test_fail_records_error(self, state_store: StateStore) -> None:
        run = state_store.start_job_run("compute_studio_state")
        state_store.fail_job_run(run.run_id, "boom")

        [stored] = state_store.list_recent_job_runs(5)
        assert stored.status is JobRunStatus.FAILED
        assert stored.error_message == "boom"

    def test_run_finishes_once(self, state_store: StateStore) -> None:
        """A finished run cannot be finished again."""
        run = state_store.start_job_run("job")
        state_store.complete_job_run(run.run_id, "ok")

        with pytest.raises(LedgerIntegrityError):
            state_store.fail_job_run(run.run_id, "late failure")

    def test_recent_runs_newest_first(self, state_store: StateStore, clock: MockClock) -> None:
        first = state_store.start_job_run("job")
        clock.advance(60)
        second = state_store.start_job_run("job")

        assert [r.run_id for r in state_store.list_recent_job_runs(10)] == [second.run_id, first.run_id]

"""Tests for the scheduled studio-state pass."""

from collections.abc import Callable
from datetime import datetime

import pytest

from studio_os.contracts.enums import Completeness
from studio_os.contracts.state import SourceReadResult, StateSnapshot
from studio_os.core.clock import MockClock
from studio_os.core.config import DriftSettings
from studio_os.detectors.ops import OPS_DETECTOR
from studio_os.engine import StudioStatePass
from studio_os.ledger import EventStore, StateStore
from studio_os.state import StateComputer


class StaticReader:
    def __init__(self, name: str, metrics: dict, *, read_at: datetime | None = None) -> None:
        self.name = name
        self.metrics = metrics
        self.read_at = read_at

    def read(self, source_identity: str, scan_limit: int) -> SourceReadResult:
        return SourceReadResult(source=self.name, metrics=dict(self.metrics), payload=self.metrics, read_at=self.read_at)


@pytest.fixture
def firestore() -> StaticReader:
    return StaticReader("firestore", {"counts.openOrders": 40, "counts.reportsOpen": 2})


def _pass(readers: list, state_store: StateStore, event_store: EventStore, clock: MockClock, **kwargs) -> StudioStatePass:
    return StudioStatePass(StateComputer(readers, clock=clock), state_store, event_store, clock=clock, **kwargs)


def _actions(event_store: EventStore) -> list[str]:
    return [record.action for record in event_store.list_range()]


class TestFirstPass:
    def test_outcome_and_ledger_order(
        self, firestore: StaticReader, state_store: StateStore, event_store: EventStore, clock: MockClock
    ) -> None:
        outcome = _pass([firestore], state_store, event_store, clock).run()

        assert outcome.diff is None
        assert outcome.drift == ()
        assert outcome.snapshot_stored
        assert outcome.summary == "snapshot=2026-03-02 diff=no drift=0 recs=0 finance=1 marketing=2"
        assert _actions(event_store) == [
            "studio_ops.detector_ran",
            "studio_finance.reconciliation_draft_created",
            "studio_finance.reconciliation_ran",
            "studio_marketing.draft_created",
            "studio_marketing.draft_created",
            "studio_marketing.drafts_ran",
            "studio_state.computed",
        ]
        assert state_store.get_snapshot("2026-03-02") == outcome.snapshot
        assert event_store.verify_chain().ok

    def test_computed_event_metadata(
        self, firestore: StaticReader, state_store: StateStore, event_store: EventStore, clock: MockClock
    ) -> None:
        _pass([firestore], state_store, event_store, clock, detector_set=[OPS_DETECTOR]).run()

        computed = event_store.list_recent(1)[0]
        assert computed.action == "studio_state.computed"
        assert computed.metadata["snapshot_date"] == "2026-03-02"
        assert computed.metadata["has_diff"] is False
        assert computed.metadata["completeness"] == "full"
        assert computed.metadata["drift_count"] == 0

    def test_fresh_payments_read_is_not_flagged(
        self, firestore: StaticReader, state_store: StateStore, event_store: EventStore, clock: MockClock
    ) -> None:
        stripe = StaticReader("stripe", {"finance.unsettledPayments": 0}, read_at=clock.now())

        outcome = _pass([firestore, stripe], state_store, event_store, clock).run()

        assert outcome.detector_results["finance"].emitted == ()


class TestDrift:
    def test_drift_against_latest_snapshot(
        self,
        firestore: StaticReader,
        state_store: StateStore,
        event_store: EventStore,
        clock: MockClock,
        snapshot_factory: Callable[..., StateSnapshot],
    ) -> None:
        state_store.save_snapshot(snapshot_factory({"counts.openOrders": 10, "counts.reportsOpen": 2}, snapshot_date="2026-03-01"))

        outcome = _pass([firestore], state_store, event_store, clock, detector_set=[OPS_DETECTOR]).run()

        assert [row.metric for row in outcome.drift] == ["counts.openOrders"]
        assert outcome.diff is not None
        assert list(outcome.diff.changes) == ["counts.openOrders"]
        assert outcome.snapshot.diagnostics.completeness is Completeness.PARTIAL
        assert "drift:counts.openOrders: expected=10 observed=40 delta=30 ratio=3.000" in outcome.snapshot.diagnostics.warnings
        assert _actions(event_store)[-2:] == ["studio_state.drift_detected", "studio_state.computed"]
        drift_event = event_store.list_recent(2)[1]
        assert drift_event.metadata["drift_count"] == 1
        assert drift_event.metadata["rows"][0]["metric"] == "counts.openOrders"
        assert state_store.get_latest_diff() == outcome.diff

    def test_thresholds_from_settings(
        self,
        firestore: StaticReader,
        state_store: StateStore,
        event_store: EventStore,
        clock: MockClock,
        snapshot_factory: Callable[..., StateSnapshot],
    ) -> None:
        state_store.save_snapshot(snapshot_factory({"counts.openOrders": 10}, snapshot_date="2026-03-01"))
        drift = DriftSettings(absolute_threshold=50)

        outcome = _pass([firestore], state_store, event_store, clock, drift=drift, detector_set=[OPS_DETECTOR]).run()

        assert outcome.drift == ()
        assert "studio_state.drift_detected" not in _actions(event_store)


class TestRepeatPass:
    def test_same_day_pass_keeps_first_snapshot(
        self, firestore: StaticReader, state_store: StateStore, event_store: EventStore, clock: MockClock
    ) -> None:
        first = _pass([firestore], state_store, event_store, clock).run()
        clock.advance(600)

        second = _pass([firestore], state_store, event_store, clock).run()

        assert not second.snapshot_stored
        assert state_store.get_snapshot("2026-03-02") == first.snapshot
        assert second.summary == "snapshot=2026-03-02 diff=no drift=0 recs=0 finance=0 marketing=0"
        assert second.detector_results["finance"].suppressed_count == 1
        assert second.detector_results["marketing"].suppressed_count == 2

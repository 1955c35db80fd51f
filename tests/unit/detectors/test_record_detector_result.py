"""Tests for recording detector runs in the ledger."""

from collections.abc import Callable

from studio_os.contracts.enums import ApprovalState
from studio_os.contracts.state import StateSnapshot
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import MockClock
from studio_os.detectors import FINANCE_DETECTOR, OPS_DETECTOR, DetectorOptions, DetectorResult, record_detector_result
from studio_os.ledger import EventStore


class TestRecordDetectorResult:
    def test_empty_run_still_leaves_summary(self, snapshot_factory: Callable[..., StateSnapshot], event_store: EventStore) -> None:
        current = snapshot_factory({})

        records = record_detector_result(event_store, OPS_DETECTOR, DetectorResult(), current=current, previous=None)

        [summary] = records
        assert summary.action == "studio_ops.detector_ran"
        assert summary.metadata == {"emitted_count": 0, "suppressed_count": 0, "rule_hits": {}}
        assert summary.input_hash == stable_hash({"snapshot_date": "2026-03-02", "previous_snapshot_date": None})

    def test_one_event_per_draft_then_summary(
        self,
        snapshot_factory: Callable[..., StateSnapshot],
        event_store: EventStore,
        clock: MockClock,
    ) -> None:
        previous = snapshot_factory({"finance.pendingOrders": 0}, snapshot_date="2026-03-01")
        current = snapshot_factory({"finance.pendingOrders": 4})
        result = FINANCE_DETECTOR.detect(current, previous, DetectorOptions(now=clock.now()))

        records = record_detector_result(event_store, FINANCE_DETECTOR, result, current=current, previous=previous)

        assert [r.action for r in records] == [
            "studio_finance.reconciliation_draft_created",
            "studio_finance.reconciliation_draft_created",
            "studio_finance.reconciliation_ran",
        ]
        mismatch = records[0]
        assert mismatch.approval_state is ApprovalState.EXEMPT
        assert mismatch.metadata["rule_id"] == "pending_orders_unsettled_mismatch"
        assert mismatch.input_hash == stable_hash({"rule_id": "pending_orders_unsettled_mismatch", "snapshot_date": "2026-03-02"})
        assert mismatch.output_hash == stable_hash(mismatch.metadata)
        assert records[-1].metadata["emitted_count"] == 2
        assert event_store.verify_chain().ok

# src/studio_os/engine/passes.py
"""The scheduled studio-state pass.

One pass:

1. compute a fresh snapshot from the authoritative sources
2. compare it with the latest persisted snapshot and fold drift into its diagnostics
3. diff it against the previous day's snapshot
4. run every detector concurrently against the snapshot and recent events
5. append each detector's drafts and summary to the ledger, in a fixed order
6. persist the snapshot and diff
7. append the drift event (when there is drift) and the pass summary event
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import structlog

from studio_os.contracts.enums import ActorType
from studio_os.contracts.events import EventDraft
from studio_os.contracts.state import DriftRow, DriftThresholds, StateDiff, StateSnapshot
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.core.config import DetectorSettings, DriftSettings, StateSettings
from studio_os.detectors import ALL_DETECTORS, Detector, DetectorOptions, DetectorResult, record_detector_result
from studio_os.detectors.finance import FINANCE_DETECTOR
from studio_os.detectors.marketing import MARKETING_DETECTOR
from studio_os.detectors.ops import OPS_DETECTOR
from studio_os.ledger.event_store import EventStore
from studio_os.ledger.state_store import StateStore
from studio_os.state.compute import StateComputer, compute_diff
from studio_os.state.drift import apply_drift, detect_drift

logger = structlog.get_logger(__name__)

PASS_ACTOR_ID = "studio-os"
STATE_JOB_NAME = "compute_studio_state"
DRIFT_ACTION = "studio_state.drift_detected"
COMPUTED_ACTION = "studio_state.computed"


@dataclass(frozen=True)
class PassOutcome:
    snapshot: StateSnapshot
    diff: StateDiff | None
    drift: tuple[DriftRow, ...]
    detector_results: dict[str, DetectorResult]
    snapshot_stored: bool

    @property
    def summary(self) -> str:
        def emitted(name: str) -> int:
            result = self.detector_results.get(name)
            return len(result.emitted) if result is not None else 0

        return (
            f"snapshot={self.snapshot.snapshot_date} diff={'yes' if self.diff is not None else 'no'} "
            f"drift={len(self.drift)} recs={emitted(OPS_DETECTOR.name)} "
            f"finance={emitted(FINANCE_DETECTOR.name)} marketing={emitted(MARKETING_DETECTOR.name)}"
        )


class StudioStatePass:
    """Compute, compare, detect, persist and audit one snapshot."""

    def __init__(
        self,
        computer: StateComputer,
        state_store: StateStore,
        events: EventStore,
        *,
        state: StateSettings | None = None,
        drift: DriftSettings | None = None,
        detectors: DetectorSettings | None = None,
        detector_set: Sequence[Detector] = ALL_DETECTORS,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._computer = computer
        self._state_store = state_store
        self._events = events
        self._state = state or StateSettings()
        self._drift = drift or DriftSettings()
        self._detector_settings = detectors or DetectorSettings()
        self._detector_set = tuple(detector_set)
        self._clock = clock

    def _cooldown_for(self, detector: Detector) -> int:
        overrides = {
            OPS_DETECTOR.name: self._detector_settings.ops_cooldown_minutes,
            FINANCE_DETECTOR.name: self._detector_settings.finance_cooldown_minutes,
            MARKETING_DETECTOR.name: self._detector_settings.marketing_cooldown_minutes,
        }
        return overrides.get(detector.name, detector.default_cooldown_minutes)

    def _run_detectors(
        self,
        current: StateSnapshot,
        previous: StateSnapshot | None,
    ) -> dict[str, DetectorResult]:
        recent = self._events.list_recent(self._detector_settings.recent_events_limit)
        now = self._clock.now()
        workers = min(self._detector_settings.max_workers, max(1, len(self._detector_set)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detector") as pool:
            futures = {
                detector.name: pool.submit(
                    detector.detect,
                    current,
                    previous,
                    DetectorOptions(now=now, recent_events=recent, cooldown_minutes=self._cooldown_for(detector)),
                )
                for detector in self._detector_set
            }
            results = {name: future.result() for name, future in futures.items()}
        for detector in self._detector_set:
            result = results[detector.name]
            logger.info(
                "detector_completed",
                detector=detector.name,
                emitted=len(result.emitted),
                suppressed=result.suppressed_count,
            )
        return results

    def run(self) -> PassOutcome:
        started = self._clock.monotonic()
        fresh = self._computer.compute_state(self._state.source_identity, self._state.scan_limit)
        latest = self._state_store.get_latest_snapshot()
        previous = self._state_store.get_previous_snapshot(fresh.snapshot_date)
        diff = compute_diff(previous, fresh)

        thresholds = DriftThresholds(absolute=self._drift.absolute_threshold, ratio=self._drift.ratio_threshold)
        drift = detect_drift(latest, fresh, thresholds)
        current = apply_drift(fresh, drift, max_rows=self._drift.max_warning_rows)

        results = self._run_detectors(current, previous)
        # Record in declaration order so the ledger is deterministic.
        for detector in self._detector_set:
            record_detector_result(self._events, detector, results[detector.name], current=current, previous=previous)

        stored = self._state_store.save_snapshot(current)
        if not stored:
            logger.info("snapshot_already_stored", snapshot_date=current.snapshot_date)
        if diff is not None:
            self._state_store.save_diff(diff)

        if drift:
            self._append_drift(latest, current, drift, thresholds)
        self._append_computed(current, diff, drift, started)

        outcome = PassOutcome(
            snapshot=current,
            diff=diff,
            drift=tuple(drift),
            detector_results=results,
            snapshot_stored=stored,
        )
        logger.info("studio_state_pass_completed", summary=outcome.summary)
        return outcome

    def _append_drift(
        self,
        latest: StateSnapshot | None,
        current: StateSnapshot,
        drift: list[DriftRow],
        thresholds: DriftThresholds,
    ) -> None:
        rows = [row.to_dict() for row in drift]
        self._events.append(
            EventDraft(
                actor_type=ActorType.SYSTEM,
                actor_id=PASS_ACTOR_ID,
                action=DRIFT_ACTION,
                rationale="Drift threshold exceeded between latest persisted snapshot and fresh cloud-derived snapshot.",
                metadata={
                    "threshold": {"absolute": thresholds.absolute, "ratio": thresholds.ratio},
                    "drift_count": len(drift),
                    "rows": rows,
                },
            ),
            input_payload={
                "previous_snapshot_date": latest.snapshot_date if latest is not None else None,
                "current_snapshot_date": current.snapshot_date,
            },
            output_payload=rows,
        )
        logger.warning("drift_detected", snapshot_date=current.snapshot_date, drift_count=len(drift))

    def _append_computed(
        self,
        current: StateSnapshot,
        diff: StateDiff | None,
        drift: list[DriftRow],
        started: float,
    ) -> None:
        diagnostics = current.diagnostics
        self._events.append(
            EventDraft(
                actor_type=ActorType.SYSTEM,
                actor_id=PASS_ACTOR_ID,
                action=COMPUTED_ACTION,
                rationale="Compute local StudioState from cloud-authoritative reads.",
                metadata={
                    "snapshot_date": current.snapshot_date,
                    "has_diff": diff is not None,
                    "drift_count": len(drift),
                    "generated_at": current.generated_at,
                    "completeness": diagnostics.completeness.value,
                    "warning_count": len(diagnostics.warnings),
                    "duration_ms": int((self._clock.monotonic() - started) * 1000),
                },
                input_hash=stable_hash(current.source_hashes),
                output_hash=stable_hash(current.to_dict()),
            )
        )

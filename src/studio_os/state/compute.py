# src/studio_os/state/compute.py
"""StateComputer: derive an immutable StateSnapshot from authoritative sources.

This is the only component that reads authoritative sources. A source that
fails is recorded, not fatal: the snapshot is marked partial, a warning
"<source>: <error>" is appended, its source hash is None, and it contributes
no metrics.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

import structlog

from studio_os.contracts.enums import Completeness
from studio_os.contracts.state import Diagnostics, MetricChange, Number, SourceReadResult, StateDiff, StateSnapshot
from studio_os.core.canonical import stable_hash
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.state.sources import SourceReader

logger = structlog.get_logger(__name__)


class StateComputer:
    def __init__(self, readers: Sequence[SourceReader], *, clock: Clock = DEFAULT_CLOCK) -> None:
        names = [reader.name for reader in readers]
        if len(set(names)) != len(names):
            raise ValueError(f"Source reader names must be unique: {names}")
        self._readers = list(readers)
        self._clock = clock

    def compute_state(self, source_identity: str, scan_limit: int) -> StateSnapshot:
        """Read every source and build the snapshot for today (UTC)."""
        results: list[SourceReadResult] = []
        payload_hashes: dict[str, str] = {}
        failures: dict[str, str] = {}
        durations: dict[str, int] = {}
        for reader in self._readers:
            started = self._clock.monotonic()
            try:
                result = reader.read(source_identity, scan_limit)
                # An unhashable payload (NaN, Infinity) fails the source, not the pass
                payload_hash = stable_hash(result.payload)
            except Exception as exc:
                failures[reader.name] = str(exc) or type(exc).__name__
                durations[reader.name] = int((self._clock.monotonic() - started) * 1000)
                logger.warning("source_read_failed", source=reader.name, error=failures[reader.name])
                continue
            results.append(result)
            payload_hashes[result.source] = payload_hash

        snapshot = build_snapshot(
            results,
            self._clock.now(),
            failures=failures,
            failure_durations_ms=durations,
            payload_hashes=payload_hashes,
        )
        logger.info(
            "state_computed",
            snapshot_date=snapshot.snapshot_date,
            completeness=snapshot.diagnostics.completeness.value,
            metric_count=len(snapshot.metrics),
            warning_count=len(snapshot.diagnostics.warnings),
        )
        return snapshot


def build_snapshot(
    results: Sequence[SourceReadResult],
    now: datetime,
    *,
    failures: Mapping[str, str] | None = None,
    failure_durations_ms: Mapping[str, int] | None = None,
    payload_hashes: Mapping[str, str] | None = None,
) -> StateSnapshot:
    """Assemble a snapshot from source results. Pure.

    payload_hashes carries hashes already computed by the caller; any source
    missing from it is hashed here.
    """
    failures = failures or {}
    payload_hashes = payload_hashes or {}
    metrics: dict[str, Number] = {}
    metric_owner: dict[str, str] = {}
    warnings: list[str] = []
    source_hashes: dict[str, str | None] = {}
    cloud_sync: dict[str, str | None] = {}
    durations: dict[str, int] = dict(failure_durations_ms or {})
    source_sample: dict[str, object] = {}
    completeness = Completeness.PARTIAL if failures else Completeness.FULL

    for result in results:
        known = payload_hashes.get(result.source)
        source_hashes[result.source] = known if known is not None else stable_hash(result.payload)
        cloud_sync[result.source] = result.read_at.isoformat() if result.read_at is not None else None
        durations[result.source] = result.duration_ms
        if result.source_sample:
            source_sample[result.source] = dict(result.source_sample)
        warnings.extend(result.warnings)
        if result.completeness is Completeness.PARTIAL:
            completeness = Completeness.PARTIAL
        for name, value in result.metrics.items():
            if name in metrics:
                warnings.append(f"{result.source}: metric {name} already supplied by {metric_owner[name]}; ignored")
                continue
            metrics[name] = value
            metric_owner[name] = result.source

    for source, error in failures.items():
        source_hashes[source] = None
        cloud_sync[source] = None
        warnings.append(f"{source}: {error}")

    return StateSnapshot(
        snapshot_date=now.date().isoformat(),
        generated_at=now,
        metrics=dict(sorted(metrics.items())),
        source_hashes=source_hashes,
        diagnostics=Diagnostics(
            completeness=completeness,
            warnings=tuple(warnings),
            durations_ms=durations,
            source_sample=source_sample,
        ),
        cloud_sync=cloud_sync,
    )


def compute_diff(previous: StateSnapshot | None, current: StateSnapshot) -> StateDiff | None:
    """Per-metric changes from previous to current.

    None iff there is no previous snapshot. Otherwise a diff listing every
    metric whose value changed (appearing and disappearing metrics included),
    sorted by name; changes may be empty.
    """
    if previous is None:
        return None
    changes: dict[str, MetricChange] = {}
    for metric in sorted(previous.metrics.keys() | current.metrics.keys()):
        before = previous.metrics.get(metric)
        after = current.metrics.get(metric)
        if before != after:
            changes[metric] = MetricChange(from_value=before, to_value=after)
    return StateDiff(
        from_snapshot_date=previous.snapshot_date,
        to_snapshot_date=current.snapshot_date,
        changes=changes,
    )

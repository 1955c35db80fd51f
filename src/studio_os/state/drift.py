"""Drift detection between the last persisted snapshot and fresh state.

A metric drifts only when BOTH thresholds are exceeded:

    |delta| > absolute   AND   |delta| / max(|expected|, 1) > ratio
"""

from __future__ import annotations

from studio_os.contracts.enums import Completeness
from studio_os.contracts.state import Diagnostics, DriftRow, DriftThresholds, StateSnapshot

DEFAULT_MAX_WARNING_ROWS = 10


def detect_drift(
    latest_persisted: StateSnapshot | None,
    fresh: StateSnapshot,
    thresholds: DriftThresholds,
) -> list[DriftRow]:
    """Rows for every metric beyond both thresholds, sorted by metric name.

    Only metrics present in both snapshots are compared; a metric that
    vanished because its source failed is already reported as partial data.
    """
    if latest_persisted is None:
        return []
    rows: list[DriftRow] = []
    for metric in sorted(latest_persisted.metrics.keys() & fresh.metrics.keys()):
        expected = latest_persisted.metrics[metric]
        observed = fresh.metrics[metric]
        delta = observed - expected
        ratio = abs(delta) / max(abs(expected), 1)
        if abs(delta) > thresholds.absolute and ratio > thresholds.ratio:
            rows.append(DriftRow(metric=metric, expected=expected, observed=observed, delta=delta, delta_ratio=ratio))
    return rows


def apply_drift(snapshot: StateSnapshot, rows: list[DriftRow], *, max_rows: int = DEFAULT_MAX_WARNING_ROWS) -> StateSnapshot:
    """Fold drift rows into snapshot diagnostics.

    Returns the snapshot unchanged when there are no rows; otherwise a copy
    marked partial with the first max_rows summary lines appended as warnings.
    """
    if not rows:
        return snapshot
    diagnostics = snapshot.diagnostics
    return snapshot.with_diagnostics(
        Diagnostics(
            completeness=Completeness.PARTIAL,
            warnings=diagnostics.warnings + tuple(row.summary_line() for row in rows[:max_rows]),
            durations_ms=dict(diagnostics.durations_ms),
            source_sample=dict(diagnostics.source_sample),
        )
    )

"""Derived state: snapshot computation, diffs and drift detection."""

from studio_os.state.compute import StateComputer, build_snapshot, compute_diff
from studio_os.state.drift import apply_drift, detect_drift
from studio_os.state.sources import JsonFileSourceReader, SourceReader, flatten_metrics

__all__ = [
    "JsonFileSourceReader",
    "SourceReader",
    "StateComputer",
    "apply_drift",
    "build_snapshot",
    "compute_diff",
    "detect_drift",
    "flatten_metrics",
]

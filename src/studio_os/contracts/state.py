"""Derived state contracts: snapshots, diffs, drift rows and source reads.

Snapshots are immutable once built. Anything that needs a modified copy
(drift folding warnings in, for example) goes through with_diagnostics().
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from studio_os.contracts.enums import Completeness, JobRunStatus

SNAPSHOT_SCHEMA_VERSION = "v3.0"

Number = int | float


@dataclass(frozen=True)
class Diagnostics:
    """How a snapshot was produced and what went wrong along the way."""

    completeness: Completeness = Completeness.FULL
    warnings: tuple[str, ...] = ()
    durations_ms: dict[str, int] = field(default_factory=dict)
    source_sample: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.completeness, Completeness):
            raise TypeError(f"completeness must be Completeness, got {self.completeness!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "completeness": self.completeness.value,
            "warnings": list(self.warnings),
            "durations_ms": dict(self.durations_ms),
            "source_sample": dict(self.source_sample),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Diagnostics:
        return cls(
            completeness=Completeness(data["completeness"]),
            warnings=tuple(data["warnings"]),
            durations_ms=dict(data["durations_ms"]),
            source_sample=dict(data["source_sample"]),
        )


@dataclass(frozen=True)
class StateSnapshot:
    """Immutable derived view of authoritative state for one date.

    metrics is a flat mapping of dotted metric names (``counts.batchesActive``)
    to numbers. source_hashes holds None for a source that failed to read.
    """

    snapshot_date: str
    generated_at: datetime
    metrics: dict[str, Number]
    source_hashes: dict[str, str | None]
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    cloud_sync: dict[str, str | None] = field(default_factory=dict)
    schema_version: str = SNAPSHOT_SCHEMA_VERSION

    def metric(self, name: str, default: Number = 0) -> Number:
        """Return a metric value, or default when the source did not supply it."""
        return self.metrics.get(name, default)

    def with_diagnostics(self, diagnostics: Diagnostics) -> StateSnapshot:
        return replace(self, diagnostics=diagnostics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "snapshot_date": self.snapshot_date,
            "generated_at": self.generated_at.isoformat(),
            "metrics": dict(sorted(self.metrics.items())),
            "source_hashes": dict(self.source_hashes),
            "cloud_sync": dict(self.cloud_sync),
            "diagnostics": self.diagnostics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StateSnapshot:
        return cls(
            snapshot_date=data["snapshot_date"],
            generated_at=datetime.fromisoformat(data["generated_at"]),
            metrics=dict(data["metrics"]),
            source_hashes=dict(data["source_hashes"]),
            diagnostics=Diagnostics.from_dict(data["diagnostics"]),
            cloud_sync=dict(data["cloud_sync"]),
            schema_version=data["schema_version"],
        )


@dataclass(frozen=True)
class MetricChange:
    """One metric's movement between two snapshots."""

    from_value: Number | None
    to_value: Number | None

    @property
    def delta(self) -> Number | None:
        if self.from_value is None or self.to_value is None:
            return None
        return self.to_value - self.from_value

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_value, "to": self.to_value}


@dataclass(frozen=True)
class StateDiff:
    """Per-metric changes between two snapshot dates."""

    from_snapshot_date: str
    to_snapshot_date: str
    changes: dict[str, MetricChange]

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_snapshot_date": self.from_snapshot_date,
            "to_snapshot_date": self.to_snapshot_date,
            "changes": {metric: change.to_dict() for metric, change in self.changes.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StateDiff:
        return cls(
            from_snapshot_date=data["from_snapshot_date"],
            to_snapshot_date=data["to_snapshot_date"],
            changes={metric: MetricChange(row["from"], row["to"]) for metric, row in data["changes"].items()},
        )


@dataclass(frozen=True)
class DriftThresholds:
    """Both thresholds must be exceeded for a metric to count as drift."""

    absolute: float
    ratio: float

    def __post_init__(self) -> None:
        if self.absolute < 0 or self.ratio < 0:
            raise ValueError(f"Drift thresholds must be non-negative, got absolute={self.absolute} ratio={self.ratio}")


@dataclass(frozen=True)
class DriftRow:
    """A metric that moved beyond thresholds between persisted and fresh state."""

    metric: str
    expected: Number
    observed: Number
    delta: Number
    delta_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "expected": self.expected,
            "observed": self.observed,
            "delta": self.delta,
            "delta_ratio": self.delta_ratio,
        }

    def summary_line(self) -> str:
        return (
            f"drift:{self.metric}: expected={self.expected} observed={self.observed} "
            f"delta={self.delta} ratio={self.delta_ratio:.3f}"
        )


@dataclass(frozen=True)
class SourceReadResult:
    """What one authoritative source returned for a compute pass.

    payload is the raw model the source hash is computed over. metrics are
    the derived numbers contributed to the snapshot.
    """

    source: str
    metrics: dict[str, Number]
    payload: Any
    read_at: datetime | None = None
    warnings: tuple[str, ...] = ()
    completeness: Completeness = Completeness.FULL
    duration_ms: int = 0
    source_sample: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobRunRecord:
    """A single execution of a scheduled job.

    Strict contract - status must be JobRunStatus enum.
    """

    run_id: str
    job_name: str
    status: JobRunStatus
    started_at: datetime
    completed_at: datetime | None = None
    summary: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, JobRunStatus):
            raise TypeError(f"status must be JobRunStatus, got {type(self.status).__name__}: {self.status!r}")

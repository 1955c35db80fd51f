# src/studio_os/state/sources.py
"""Authoritative source readers consumed by the StateComputer.

The authoritative cloud store is an external collaborator: the engine only
sees it through the SourceReader protocol. JsonFileSourceReader reads a
local JSON export of a source model, for offline runs and tests.

Export format::

    {
      "readAt": "2026-03-01T08:00:00Z",
      "metrics": {"counts": {"batchesActive": 12}, "finance": {"pendingOrders": 3}},
      "completeness": "full",
      "warnings": [],
      "truncated": false,
      "sourceSample": {"batchesScanned": 12}
    }

Nested metric objects are flattened to dotted names (``counts.batchesActive``).
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from studio_os.contracts.enums import Completeness
from studio_os.contracts.state import Number, SourceReadResult
from studio_os.core.clock import DEFAULT_CLOCK, Clock


class SourceReader(Protocol):
    """One authoritative source (document store, payment provider, ...)."""

    name: str

    def read(self, source_identity: str, scan_limit: int) -> SourceReadResult:
        """Read the source. Raising marks the source failed for this pass."""
        ...


def flatten_metrics(data: Mapping[str, Any], prefix: str = "") -> dict[str, Number]:
    """Flatten nested metric objects into dotted names.

    Raises:
        ValueError: If a leaf is not a finite number
    """
    flat: dict[str, Number] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_metrics(value, prefix=f"{name}."))
        elif isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError(f"Metric {name!r} must be a number, got {type(value).__name__}")
        elif isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Metric {name!r} must be finite, got {value}")
        else:
            flat[name] = value
    return flat


def _parse_read_at(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


class JsonFileSourceReader:
    """Reads a source model exported to a JSON file."""

    def __init__(self, name: str, path: Path | str, *, clock: Clock = DEFAULT_CLOCK) -> None:
        self.name = name
        self._path = Path(path)
        self._clock = clock

    def read(self, source_identity: str, scan_limit: int) -> SourceReadResult:
        started = self._clock.monotonic()
        with self._path.open(encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, Mapping):
            raise ValueError(f"{self._path}: source export must be a JSON object")

        warnings = [str(w) for w in payload.get("warnings", [])]
        completeness = Completeness(payload.get("completeness", Completeness.FULL.value))
        if payload.get("truncated") is True:
            warnings.append(f"{self.name}: scan limit {scan_limit} reached for {source_identity}")
            completeness = Completeness.PARTIAL

        return SourceReadResult(
            source=self.name,
            metrics=flatten_metrics(payload.get("metrics", {})),
            payload=payload,
            read_at=_parse_read_at(payload.get("readAt")),
            warnings=tuple(warnings),
            completeness=completeness,
            duration_ms=int((self._clock.monotonic() - started) * 1000),
            source_sample=dict(payload.get("sourceSample", {})),
        )

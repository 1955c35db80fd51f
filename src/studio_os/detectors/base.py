# src/studio_os/detectors/base.py
"""Shared detector contracts and ledger recording.

A detector is a pure function

    detect(current, previous, options) -> DetectorResult

evaluated against immutable snapshots and a window of recent ledger events.
Detectors never write anywhere. The pass hands each result to
record_detector_result(), which appends one `*_draft_created` event per
emitted draft and always exactly one `*_ran` summary event, so a pass with
no findings is still visible in the ledger.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from studio_os.contracts.enums import ActorType, ApprovalState, Target
from studio_os.contracts.events import EventDraft, EventRecord
from studio_os.contracts.state import Number, StateSnapshot
from studio_os.core.canonical import stable_hash
from studio_os.ledger.event_store import EventStore, has_recent_event

DETECTOR_ACTOR_ID = "studio-os"


@dataclass(frozen=True)
class DetectorOptions:
    """Inputs every detector receives besides the snapshots.

    cooldown_minutes of None means the detector's own default.
    """

    now: datetime
    recent_events: Sequence[EventRecord] = ()
    cooldown_minutes: int | None = None

    def cutoff(self, default_minutes: int) -> datetime:
        minutes = max(1, self.cooldown_minutes if self.cooldown_minutes is not None else default_minutes)
        return self.now - timedelta(minutes=minutes)


class Draft(Protocol):
    """A detector finding. Requires approval to act on, none to exist."""

    def to_dict(self) -> dict[str, Any]: ...

    def event_rationale(self) -> str: ...

    def event_input(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class DetectorResult:
    emitted: tuple[Draft, ...] = ()
    suppressed_count: int = 0
    rule_hits: dict[str, int] = field(default_factory=dict)


DetectFn = Callable[[StateSnapshot, StateSnapshot | None, DetectorOptions], DetectorResult]


@dataclass(frozen=True)
class Detector:
    """A detect function bound to the ledger actions it reports under."""

    name: str
    detect: DetectFn
    draft_action: str
    ran_action: str
    ran_rationale: str
    default_cooldown_minutes: int


@dataclass(frozen=True)
class RecommendationDraft:
    """Rule-based recommendation emitted by the ops and finance detectors."""

    id: str
    rule_id: str
    severity: str
    title: str
    rationale: str
    recommendation: str
    snapshot_date: str
    evidence_refs: tuple[str, ...] = ()
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "rule_id": self.rule_id,
            "severity": self.severity,
            "title": self.title,
            "rationale": self.rationale,
            "recommendation": self.recommendation,
            "snapshot_date": self.snapshot_date,
        }
        if self.evidence_refs:
            data["evidence_refs"] = list(self.evidence_refs)
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data

    def event_rationale(self) -> str:
        return self.rationale

    def event_input(self) -> dict[str, Any]:
        return {"rule_id": self.rule_id, "snapshot_date": self.snapshot_date}


def fmt(value: Number) -> str:
    """Render a metric the way staff read it: 12, not 12.0."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def signed(value: Number) -> str:
    return f"+{fmt(value)}" if value >= 0 else fmt(value)


def previous_metric(current: StateSnapshot, previous: StateSnapshot | None, name: str) -> Number:
    """Previous value of a metric; the current value when there is nothing to compare."""
    if previous is None or name not in previous.metrics:
        return current.metric(name)
    return previous.metrics[name]


def recently_emitted(
    options: DetectorOptions,
    *,
    action: str,
    default_cooldown_minutes: int,
    rule_id: str,
    snapshot_date: str,
) -> bool:
    """Whether this rule already emitted a draft for this snapshot date within the cooldown."""

    def same_rule(metadata: Mapping[str, Any]) -> bool:
        return metadata.get("rule_id") == rule_id and metadata.get("snapshot_date") == snapshot_date

    return has_recent_event(
        list(options.recent_events),
        action=action,
        since=options.cutoff(default_cooldown_minutes),
        match=same_rule,
    )


def record_detector_result(
    event_store: EventStore,
    detector: Detector,
    result: DetectorResult,
    *,
    current: StateSnapshot,
    previous: StateSnapshot | None,
) -> list[EventRecord]:
    """Append the drafts and the summary for one detector run."""
    records: list[EventRecord] = []
    for draft in result.emitted:
        payload = draft.to_dict()
        records.append(
            event_store.append(
                EventDraft(
                    actor_type=ActorType.SYSTEM,
                    actor_id=DETECTOR_ACTOR_ID,
                    action=detector.draft_action,
                    rationale=draft.event_rationale(),
                    target=Target.LOCAL,
                    approval_state=ApprovalState.EXEMPT,
                    metadata=payload,
                    input_hash=stable_hash(draft.event_input()),
                    output_hash=stable_hash(payload),
                )
            )
        )

    summary = {
        "emitted_count": len(result.emitted),
        "suppressed_count": result.suppressed_count,
        "rule_hits": dict(result.rule_hits),
    }
    records.append(
        event_store.append(
            EventDraft(
                actor_type=ActorType.SYSTEM,
                actor_id=DETECTOR_ACTOR_ID,
                action=detector.ran_action,
                rationale=detector.ran_rationale,
                metadata=summary,
            ),
            input_payload={
                "snapshot_date": current.snapshot_date,
                "previous_snapshot_date": previous.snapshot_date if previous is not None else None,
            },
            output_payload=summary,
        )
    )
    return records

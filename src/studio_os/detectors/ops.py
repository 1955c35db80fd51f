"""Ops anomaly detector: batch backlog, agent queue and reservation pile-ups."""

from __future__ import annotations

from studio_os.contracts.enums import Severity
from studio_os.contracts.state import StateSnapshot
from studio_os.detectors.base import (
    Detector,
    DetectorOptions,
    DetectorResult,
    RecommendationDraft,
    fmt,
    previous_metric,
    recently_emitted,
    signed,
)

OPS_DRAFT_ACTION = "studio_ops.recommendation_draft_created"
OPS_RAN_ACTION = "studio_ops.detector_ran"
OPS_DEFAULT_COOLDOWN_MINUTES = 120

STALLED_BATCHES = "stalled_batches"
QUEUE_SPIKE = "queue_spike"
OVERDUE_RESERVATIONS = "overdue_reservations"

STALLED_BATCHES_MIN_ACTIVE = 25
STALLED_BATCHES_MAX_FIRINGS = 2
QUEUE_SPIKE_MIN_PENDING = 20
QUEUE_SPIKE_MIN_DELTA = 8
OVERDUE_RESERVATIONS_MIN_OPEN = 30


def _draft(snapshot: StateSnapshot, rule_id: str, severity: Severity, title: str, rationale: str, recommendation: str) -> RecommendationDraft:
    return RecommendationDraft(
        id=f"{rule_id}:{snapshot.snapshot_date}",
        rule_id=rule_id,
        severity=severity.value,
        title=title,
        rationale=rationale,
        recommendation=recommendation,
        snapshot_date=snapshot.snapshot_date,
    )


def detect_ops_recommendations(
    current: StateSnapshot,
    previous: StateSnapshot | None,
    options: DetectorOptions,
) -> DetectorResult:
    emitted: list[RecommendationDraft] = []
    rule_hits = {STALLED_BATCHES: 0, QUEUE_SPIKE: 0, OVERDUE_RESERVATIONS: 0}
    suppressed = 0

    def emit(draft: RecommendationDraft) -> None:
        nonlocal suppressed
        rule_hits[draft.rule_id] += 1
        if recently_emitted(
            options,
            action=OPS_DRAFT_ACTION,
            default_cooldown_minutes=OPS_DEFAULT_COOLDOWN_MINUTES,
            rule_id=draft.rule_id,
            snapshot_date=draft.snapshot_date,
        ):
            suppressed += 1
        else:
            emitted.append(draft)

    batches_active = current.metric("counts.batchesActive")
    firings_scheduled = current.metric("counts.firingsScheduled")
    if batches_active >= STALLED_BATCHES_MIN_ACTIVE and firings_scheduled <= STALLED_BATCHES_MAX_FIRINGS:
        emit(
            _draft(
                current,
                STALLED_BATCHES,
                Severity.HIGH,
                "Potential stalled batch backlog",
                f"Active batches ({fmt(batches_active)}) are high while firings scheduled ({fmt(firings_scheduled)}) are low.",
                "Review kiln schedule and staff queue for blocked closeout work.",
            )
        )

    pending = current.metric("ops.agentRequestsPending")
    pending_delta = pending - previous_metric(current, previous, "ops.agentRequestsPending")
    if pending >= QUEUE_SPIKE_MIN_PENDING or pending_delta >= QUEUE_SPIKE_MIN_DELTA:
        emit(
            _draft(
                current,
                QUEUE_SPIKE,
                Severity.MEDIUM,
                "Agent request queue spike",
                f"Agent requests pending is {fmt(pending)} (delta {signed(pending_delta)}).",
                "Triage agent request queue and confirm staffing coverage for request handling.",
            )
        )

    reservations = current.metric("counts.reservationsOpen")
    reservation_delta = reservations - previous_metric(current, previous, "counts.reservationsOpen")
    if reservations >= OVERDUE_RESERVATIONS_MIN_OPEN and reservation_delta > 0:
        emit(
            _draft(
                current,
                OVERDUE_RESERVATIONS,
                Severity.MEDIUM,
                "Reservations accumulating without closure",
                f"Open reservations is {fmt(reservations)} with upward trend (delta {signed(reservation_delta)}).",
                "Audit reservation lifecycle blockers and clear oldest open reservations first.",
            )
        )

    return DetectorResult(emitted=tuple(emitted), suppressed_count=suppressed, rule_hits=rule_hits)


OPS_DETECTOR = Detector(
    name="ops",
    detect=detect_ops_recommendations,
    draft_action=OPS_DRAFT_ACTION,
    ran_action=OPS_RAN_ACTION,
    ran_rationale="Ops anomaly detector evaluated snapshot and emitted draft recommendations.",
    default_cooldown_minutes=OPS_DEFAULT_COOLDOWN_MINUTES,
)

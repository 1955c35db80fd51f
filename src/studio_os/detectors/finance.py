"""Finance reconciliation detector.

Compares portal orders against payment-provider state and flags stale
payment reads. Findings carry evidence refs and a confidence score so the
reviewer can see exactly which numbers triggered them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

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
)

FINANCE_DRAFT_ACTION = "studio_finance.reconciliation_draft_created"
FINANCE_RAN_ACTION = "studio_finance.reconciliation_ran"
FINANCE_DEFAULT_COOLDOWN_MINUTES = 360

PENDING_ORDERS_UNSETTLED_MISMATCH = "pending_orders_unsettled_mismatch"
STRIPE_READ_STALE = "stripe_read_stale"
UNSETTLED_SPIKE = "unsettled_spike"

# Source whose read timestamp (snapshot.cloud_sync) is checked for staleness
PAYMENTS_SOURCE = "stripe"
STRIPE_READ_MAX_AGE = timedelta(hours=24)
MISMATCH_HIGH_DELTA = 5
UNSETTLED_SPIKE_MIN_DELTA = 5


def _draft(
    snapshot: StateSnapshot,
    rule_id: str,
    severity: Severity,
    title: str,
    rationale: str,
    recommendation: str,
    evidence_refs: list[str],
    confidence: float,
) -> RecommendationDraft:
    return RecommendationDraft(
        id=f"{rule_id}:{snapshot.snapshot_date}",
        rule_id=rule_id,
        severity=severity.value,
        title=title,
        rationale=rationale,
        recommendation=recommendation,
        snapshot_date=snapshot.snapshot_date,
        evidence_refs=tuple(evidence_refs),
        confidence=confidence,
    )


def _is_stale(read_at: str | None, now: datetime) -> bool:
    if not read_at:
        return True
    try:
        parsed = datetime.fromisoformat(read_at.replace("Z", "+00:00"))
    except ValueError:
        return True
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return now - parsed > STRIPE_READ_MAX_AGE


def detect_finance_reconciliation(
    current: StateSnapshot,
    previous: StateSnapshot | None,
    options: DetectorOptions,
) -> DetectorResult:
    emitted: list[RecommendationDraft] = []
    rule_hits = {PENDING_ORDERS_UNSETTLED_MISMATCH: 0, STRIPE_READ_STALE: 0, UNSETTLED_SPIKE: 0}
    suppressed = 0

    def emit(draft: RecommendationDraft) -> None:
        nonlocal suppressed
        rule_hits[draft.rule_id] += 1
        if recently_emitted(
            options,
            action=FINANCE_DRAFT_ACTION,
            default_cooldown_minutes=FINANCE_DEFAULT_COOLDOWN_MINUTES,
            rule_id=draft.rule_id,
            snapshot_date=draft.snapshot_date,
        ):
            suppressed += 1
        else:
            emitted.append(draft)

    pending_orders = current.metric("finance.pendingOrders")
    unsettled = current.metric("finance.unsettledPayments")
    if pending_orders > 0 or unsettled > 0:
        delta = abs(pending_orders - unsettled)
        if delta >= 1:
            high = delta >= MISMATCH_HIGH_DELTA
            emit(
                _draft(
                    current,
                    PENDING_ORDERS_UNSETTLED_MISMATCH,
                    Severity.HIGH if high else Severity.MEDIUM,
                    "Pending orders and unsettled payments mismatch",
                    f"Pending orders ({fmt(pending_orders)}) differ from unsettled payments ({fmt(unsettled)}) by {fmt(delta)}.",
                    "Audit recent Stripe checkout sessions and ensure portal orders are reconciled.",
                    [f"finance.pendingOrders={fmt(pending_orders)}", f"finance.unsettledPayments={fmt(unsettled)}"],
                    0.78 if high else 0.64,
                )
            )

    stripe_read_at = current.cloud_sync.get(PAYMENTS_SOURCE)
    if _is_stale(stripe_read_at, options.now):
        emit(
            _draft(
                current,
                STRIPE_READ_STALE,
                Severity.HIGH,
                "Stripe read is stale or missing",
                f"Stripe read is older than 24h ({stripe_read_at})." if stripe_read_at else "Stripe read timestamp is missing.",
                "Verify Stripe reconciliation pipeline and confirm last successful read.",
                [f"stripeReadAt={stripe_read_at or 'null'}", f"snapshotDate={current.snapshot_date}"],
                0.82,
            )
        )

    previous_unsettled = previous_metric(current, previous, "finance.unsettledPayments")
    unsettled_delta = unsettled - previous_unsettled
    if unsettled_delta >= UNSETTLED_SPIKE_MIN_DELTA:
        emit(
            _draft(
                current,
                UNSETTLED_SPIKE,
                Severity.MEDIUM,
                "Unsettled payments spike",
                f"Unsettled payments increased by {fmt(unsettled_delta)} since last snapshot.",
                "Review recent Stripe payouts/refunds for delays or disputes.",
                [f"finance.unsettledPayments={fmt(unsettled)}", f"previous.unsettledPayments={fmt(previous_unsettled)}"],
                0.7,
            )
        )

    return DetectorResult(emitted=tuple(emitted), suppressed_count=suppressed, rule_hits=rule_hits)


FINANCE_DETECTOR = Detector(
    name="finance",
    detect=detect_finance_reconciliation,
    draft_action=FINANCE_DRAFT_ACTION,
    ran_action=FINANCE_RAN_ACTION,
    ran_rationale="Finance reconciliation evaluated snapshot and emitted draft flags.",
    default_cooldown_minutes=FINANCE_DEFAULT_COOLDOWN_MINUTES,
)

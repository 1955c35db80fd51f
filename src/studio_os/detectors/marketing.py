"""Marketing draft pipeline.

Builds channel copy drafts (instagram, email) from snapshot counts. Drafts
start in `draft` status and move through review by staff; nothing is ever
published from here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from studio_os.contracts.enums import MarketingDraftStatus
from studio_os.contracts.state import StateSnapshot
from studio_os.detectors.base import Detector, DetectorOptions, DetectorResult, fmt
from studio_os.ledger.event_store import has_recent_event

MARKETING_DRAFT_ACTION = "studio_marketing.draft_created"
MARKETING_RAN_ACTION = "studio_marketing.drafts_ran"
MARKETING_DEFAULT_COOLDOWN_MINUTES = 360
MARKETING_TEMPLATE_VERSION = "marketing-v1"
MARKETING_RULE = "marketing_drafts"

_ALLOWED_TRANSITIONS: frozenset[tuple[MarketingDraftStatus, MarketingDraftStatus]] = frozenset(
    {
        (MarketingDraftStatus.DRAFT, MarketingDraftStatus.NEEDS_REVIEW),
        (MarketingDraftStatus.NEEDS_REVIEW, MarketingDraftStatus.APPROVED_FOR_PUBLISH),
        (MarketingDraftStatus.NEEDS_REVIEW, MarketingDraftStatus.DRAFT),
        (MarketingDraftStatus.APPROVED_FOR_PUBLISH, MarketingDraftStatus.NEEDS_REVIEW),
    }
)


@dataclass(frozen=True)
class MarketingDraft:
    draft_id: str
    status: MarketingDraftStatus
    channel: str
    title: str
    copy: str
    source_snapshot_date: str
    source_refs: tuple[str, ...]
    confidence_notes: str
    template_version: str = MARKETING_TEMPLATE_VERSION

    def __post_init__(self) -> None:
        if not isinstance(self.status, MarketingDraftStatus):
            raise TypeError(f"status must be MarketingDraftStatus, got {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "draft_id": self.draft_id,
            "status": self.status.value,
            "channel": self.channel,
            "title": self.title,
            "copy": self.copy,
            "source_snapshot_date": self.source_snapshot_date,
            "source_refs": list(self.source_refs),
            "confidence_notes": self.confidence_notes,
            "template_version": self.template_version,
        }

    def event_rationale(self) -> str:
        return f"Generated {self.channel} draft from StudioState snapshot."

    def event_input(self) -> dict[str, Any]:
        return {"snapshot_date": self.source_snapshot_date, "template_version": self.template_version}


def build_marketing_drafts(snapshot: StateSnapshot) -> list[MarketingDraft]:
    m = snapshot.metric
    refs = (
        f"ops.blockedTickets={fmt(m('ops.blockedTickets'))}",
        f"ops.agentRequestsPending={fmt(m('ops.agentRequestsPending'))}",
        f"counts.batchesActive={fmt(m('counts.batchesActive'))}",
        f"counts.firingsScheduled={fmt(m('counts.firingsScheduled'))}",
    )
    return [
        MarketingDraft(
            draft_id=f"mk-{snapshot.snapshot_date}-ig",
            status=MarketingDraftStatus.DRAFT,
            channel="instagram",
            title="Studio Pulse Update",
            copy=(
                f"Today in the studio: {fmt(m('counts.batchesActive'))} active batches, "
                f"{fmt(m('counts.firingsScheduled'))} firings scheduled, and "
                f"{fmt(m('ops.agentRequestsPending'))} incoming requests in queue."
            ),
            source_snapshot_date=snapshot.snapshot_date,
            source_refs=refs,
            confidence_notes="Derived from v3 StudioState snapshot metrics; human tone polish required.",
        ),
        MarketingDraft(
            draft_id=f"mk-{snapshot.snapshot_date}-email",
            status=MarketingDraftStatus.DRAFT,
            channel="email",
            title="Weekly Studio Operations Digest",
            copy=(
                f"We are tracking {fmt(m('counts.reservationsOpen'))} open reservations and "
                f"{fmt(m('counts.reportsOpen'))} open reports. "
                "Team focus this week: reduce blockers and keep firing cadence predictable."
            ),
            source_snapshot_date=snapshot.snapshot_date,
            source_refs=refs,
            confidence_notes="Counts-only summary; requires staff validation before review escalation.",
        ),
    ]


def has_recent_marketing_draft(options: DetectorOptions, snapshot_date: str) -> bool:
    return has_recent_event(
        list(options.recent_events),
        action=MARKETING_DRAFT_ACTION,
        since=options.cutoff(MARKETING_DEFAULT_COOLDOWN_MINUTES),
        match=lambda metadata: metadata.get("source_snapshot_date") == snapshot_date,
    )


def detect_marketing_drafts(
    current: StateSnapshot,
    previous: StateSnapshot | None,
    options: DetectorOptions,
) -> DetectorResult:
    """Drafts for the current snapshot, suppressed as a group when already drafted."""
    drafts = build_marketing_drafts(current)
    if has_recent_marketing_draft(options, current.snapshot_date):
        return DetectorResult(suppressed_count=len(drafts), rule_hits={MARKETING_RULE: 1})
    return DetectorResult(emitted=tuple(drafts), rule_hits={MARKETING_RULE: 1})


def can_transition_draft_status(from_status: MarketingDraftStatus, to_status: MarketingDraftStatus) -> bool:
    return from_status == to_status or (from_status, to_status) in _ALLOWED_TRANSITIONS


MARKETING_DETECTOR = Detector(
    name="marketing",
    detect=detect_marketing_drafts,
    draft_action=MARKETING_DRAFT_ACTION,
    ran_action=MARKETING_RAN_ACTION,
    ran_rationale="Marketing draft pipeline evaluated snapshot and emitted channel drafts.",
    default_cooldown_minutes=MARKETING_DEFAULT_COOLDOWN_MINUTES,
)

"""Rule-based detectors that turn snapshots into draft recommendations."""

from studio_os.detectors.base import (
    Detector,
    DetectorOptions,
    DetectorResult,
    RecommendationDraft,
    record_detector_result,
    recently_emitted,
)
from studio_os.detectors.finance import FINANCE_DETECTOR, detect_finance_reconciliation
from studio_os.detectors.marketing import (
    MARKETING_DETECTOR,
    MarketingDraft,
    build_marketing_drafts,
    can_transition_draft_status,
    detect_marketing_drafts,
)
from studio_os.detectors.ops import OPS_DETECTOR, detect_ops_recommendations

ALL_DETECTORS: tuple[Detector, ...] = (OPS_DETECTOR, FINANCE_DETECTOR, MARKETING_DETECTOR)

__all__ = [
    "ALL_DETECTORS",
    "FINANCE_DETECTOR",
    "MARKETING_DETECTOR",
    "OPS_DETECTOR",
    "Detector",
    "DetectorOptions",
    "DetectorResult",
    "MarketingDraft",
    "RecommendationDraft",
    "build_marketing_drafts",
    "can_transition_draft_status",
    "detect_finance_reconciliation",
    "detect_marketing_drafts",
    "detect_ops_recommendations",
    "record_detector_result",
    "recently_emitted",
]

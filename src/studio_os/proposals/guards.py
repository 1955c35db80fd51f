# src/studio_os/proposals/guards.py
"""Guards for staff-triggered proposal actions.

Each guard returns a GuardResult naming the first reason the action is not
allowed, so the staff console can show "rationale required" instead of a
disabled button with no explanation. require() turns a denial into a
GuardViolationError (KillSwitchEngagedError when the kill switch is the cause).
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass

from studio_os.contracts.enums import ProposalStatus
from studio_os.contracts.errors import GuardViolationError, KillSwitchEngagedError
from studio_os.contracts.proposals import GuardResult

BUSY = "another action on this proposal is in progress"
KILL_SWITCH_ENGAGED = "kill switch engaged"
RATIONALE_REQUIRED = "rationale required"
REASON_REQUIRED = "reason required"
ROLLBACK_REQUIRES_EXECUTED = "rollback requires an executed proposal"

DEFAULT_ROLLBACK_REASON_MIN_LENGTH = 10
DEFAULT_IDEMPOTENCY_KEY_MIN_LENGTH = 8


def can_approve(*, busy: bool, disabled: bool, approval_rationale: str | None) -> GuardResult:
    if busy:
        return GuardResult.deny(BUSY)
    if disabled:
        return GuardResult.deny(KILL_SWITCH_ENGAGED)
    if not (approval_rationale or "").strip():
        return GuardResult.deny(RATIONALE_REQUIRED)
    return GuardResult.ok()


def can_reject(*, busy: bool, reason: str | None) -> GuardResult:
    if busy:
        return GuardResult.deny(BUSY)
    if not (reason or "").strip():
        return GuardResult.deny(REASON_REQUIRED)
    return GuardResult.ok()


def can_execute(*, busy: bool, disabled: bool) -> GuardResult:
    if busy:
        return GuardResult.deny(BUSY)
    if disabled:
        return GuardResult.deny(KILL_SWITCH_ENGAGED)
    return GuardResult.ok()


def can_rollback(
    *,
    busy: bool,
    disabled: bool,
    status: ProposalStatus,
    reason: str | None,
    idempotency_key: str | None,
    min_reason_length: int = DEFAULT_ROLLBACK_REASON_MIN_LENGTH,
    min_key_length: int = DEFAULT_IDEMPOTENCY_KEY_MIN_LENGTH,
) -> GuardResult:
    if busy:
        return GuardResult.deny(BUSY)
    if disabled:
        return GuardResult.deny(KILL_SWITCH_ENGAGED)
    if status is not ProposalStatus.EXECUTED:
        return GuardResult.deny(ROLLBACK_REQUIRES_EXECUTED)
    if len((reason or "").strip()) < min_reason_length:
        return GuardResult.deny(f"rollback reason too short (minimum {min_reason_length} characters)")
    if len((idempotency_key or "").strip()) < min_key_length:
        return GuardResult.deny(f"idempotency key too short (minimum {min_key_length} characters)")
    return GuardResult.ok()


def require(result: GuardResult, action: str) -> None:
    """Raise unless the guard allowed the action.

    Raises:
        KillSwitchEngagedError: If the kill switch denied it
        GuardViolationError: For every other denial
    """
    if result.allowed:
        return
    assert result.reason is not None
    if result.reason == KILL_SWITCH_ENGAGED:
        raise KillSwitchEngagedError(action)
    raise GuardViolationError(action, result.reason)


def build_idempotency_key(manual_key: str | None, proposal_id: str, now_ms: int) -> str:
    """The trimmed manual key, or `pilot-<id prefix>-<now_ms>`.

    Repeated clicks in the same millisecond derive the same key and so
    collapse into one execution.
    """
    trimmed = (manual_key or "").strip()
    if trimmed:
        return trimmed
    return f"pilot-{proposal_id.split('-')[0]}-{now_ms}"


class KillSwitch:
    """Process-wide switch that disables approve, execute and rollback."""

    def __init__(self, engaged: bool = False) -> None:
        self._engaged = engaged
        self._lock = threading.Lock()

    @property
    def engaged(self) -> bool:
        with self._lock:
            return self._engaged

    def set(self, engaged: bool) -> bool:
        """Set the switch; returns the previous value."""
        with self._lock:
            previous = self._engaged
            self._engaged = engaged
            return previous


@dataclass
class _Bucket:
    window_start: float
    count: int


class HourlyQuota:
    """Fixed-window call budget per (actor, capability) bucket.

    Windows are one hour long and keyed on wall-clock seconds.
    """

    WINDOW_SECONDS = 3600

    def __init__(self) -> None:
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def consume(self, bucket: str, limit: int, now_seconds: float) -> tuple[bool, int]:
        """Take one call from the bucket.

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        limit = max(1, limit)
        with self._lock:
            existing = self._buckets.get(bucket)
            if existing is None or now_seconds - existing.window_start >= self.WINDOW_SECONDS:
                self._buckets[bucket] = _Bucket(window_start=now_seconds, count=1)
                return True, 0
            if existing.count >= limit:
                remaining = self.WINDOW_SECONDS - (now_seconds - existing.window_start)
                return False, max(1, math.ceil(remaining))
            existing.count += 1
            return True, 0

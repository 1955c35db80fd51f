"""Proposal lifecycle: guards, executors and the governed state machine."""

from studio_os.proposals.executors import ActionExecutor, AuthoritativeStoreWriter, RoutingActionExecutor
from studio_os.proposals.guards import (
    HourlyQuota,
    KillSwitch,
    build_idempotency_key,
    can_approve,
    can_execute,
    can_reject,
    can_rollback,
)
from studio_os.proposals.lifecycle import ProposalLifecycle, approval_state_for, system_actor

__all__ = [
    "ActionExecutor",
    "AuthoritativeStoreWriter",
    "HourlyQuota",
    "KillSwitch",
    "ProposalLifecycle",
    "RoutingActionExecutor",
    "approval_state_for",
    "build_idempotency_key",
    "can_approve",
    "can_execute",
    "can_reject",
    "can_rollback",
    "system_actor",
]

"""Side-effect executors for approved proposals.

The lifecycle never performs an effect itself; it hands the approved
proposal to an ActionExecutor. The routing executor sends capabilities that
name a connector through that connector, and everything else to the
injected authoritative-store writer.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from studio_os.capabilities.defaults import OPS_NOTE_APPEND as OPS_NOTE_APPEND_CAPABILITY
from studio_os.connectors.ops_notes import OPS_NOTE_APPEND, OPS_NOTE_ROLLBACK
from studio_os.connectors.registry import ConnectorRegistry
from studio_os.connectors.retry import RetryConfig, call_with_retry
from studio_os.contracts.capabilities import CapabilityDefinition
from studio_os.contracts.connectors import DEFAULT_CONNECTOR_TIMEOUT_MS, ConnectorContext, ConnectorRequest
from studio_os.contracts.enums import ConnectorIntent
from studio_os.contracts.errors import GuardViolationError
from studio_os.contracts.proposals import Proposal

logger = structlog.get_logger(__name__)

# capability id -> (execute action, rollback action) on its write connector
DEFAULT_WRITE_ACTIONS: dict[str, tuple[str, str]] = {
    OPS_NOTE_APPEND_CAPABILITY: (OPS_NOTE_APPEND, OPS_NOTE_ROLLBACK),
}


class ActionExecutor(Protocol):
    def execute(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]: ...

    def rollback(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        reason: str,
    ) -> dict[str, Any]: ...


class AuthoritativeStoreWriter(Protocol):
    """The approved-proposal write path into the authoritative store."""

    def apply(self, capability_id: str, input: Mapping[str, Any], *, idempotency_key: str) -> dict[str, Any]: ...

    def revert(self, capability_id: str, executed: Mapping[str, Any], *, idempotency_key: str, reason: str) -> dict[str, Any]: ...


class RoutingActionExecutor:
    def __init__(
        self,
        connectors: ConnectorRegistry,
        writer: AuthoritativeStoreWriter | None = None,
        *,
        timeout_ms: int = DEFAULT_CONNECTOR_TIMEOUT_MS,
        write_actions: Mapping[str, tuple[str, str]] | None = None,
        read_retry: RetryConfig | None = None,
    ) -> None:
        self._connectors = connectors
        self._writer = writer
        self._timeout_ms = timeout_ms
        self._read_retry = read_retry or RetryConfig.no_retry()
        self._write_actions = dict(DEFAULT_WRITE_ACTIONS if write_actions is None else write_actions)

    def _context(self, proposal: Proposal, kind: str) -> ConnectorContext:
        return ConnectorContext(request_id=f"{proposal.proposal_id}:{kind}", timeout_ms=self._timeout_ms)

    def _require_writer(self, capability: CapabilityDefinition, action: str) -> AuthoritativeStoreWriter:
        if self._writer is None:
            raise GuardViolationError(action, f"no authoritative-store writer configured for {capability.id}")
        return self._writer

    def _write_action(self, capability: CapabilityDefinition, action: str, index: int) -> str:
        actions = self._write_actions.get(capability.id)
        if actions is None:
            raise GuardViolationError(action, f"no connector write action mapped for {capability.id}")
        return actions[index]

    def execute(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        merged = {**proposal.input, **payload}
        if capability.connector_id is None:
            return self._require_writer(capability, "execute").apply(capability.id, merged, idempotency_key=idempotency_key)

        connector = self._connectors.get(capability.connector_id)
        ctx = self._context(proposal, "execute")
        if capability.read_only:
            read = ConnectorRequest(intent=ConnectorIntent.READ, action=capability.id, input=merged)
            result = call_with_retry(lambda: connector.execute(ctx, read), self._read_retry)
        else:
            # Writes are made repeatable by the idempotency key, never retried here.
            write = ConnectorRequest(
                intent=ConnectorIntent.WRITE,
                action=self._write_action(capability, "execute", 0),
                input={
                    **merged,
                    "proposalId": proposal.proposal_id,
                    "idempotencyKey": idempotency_key,
                    "approvedBy": proposal.approved_by,
                    "ownerUid": merged.get("ownerUid", proposal.owner_uid),
                },
            )
            result = connector.execute(ctx, write)
        logger.info(
            "proposal_effect_applied",
            proposal_id=proposal.proposal_id,
            connector_id=connector.id,
            output_hash=result.output_hash,
        )
        return {"connector_id": connector.id, "output_hash": result.output_hash, **result.payload}

    def rollback(
        self,
        capability: CapabilityDefinition,
        proposal: Proposal,
        *,
        idempotency_key: str,
        reason: str,
    ) -> dict[str, Any]:
        if capability.read_only:
            return {"reverted": False, "detail": "read-only capability has no effect to revert"}
        if capability.connector_id is None:
            return self._require_writer(capability, "rollback").revert(
                capability.id,
                proposal.executed_payload or {},
                idempotency_key=idempotency_key,
                reason=reason,
            )

        connector = self._connectors.get(capability.connector_id)
        request = ConnectorRequest(
            intent=ConnectorIntent.WRITE,
            action=self._write_action(capability, "rollback", 1),
            input={"proposalId": proposal.proposal_id, "idempotencyKey": idempotency_key, "reason": reason},
        )
        result = connector.execute(self._context(proposal, "rollback"), request)
        return {"connector_id": connector.id, "output_hash": result.output_hash, **result.payload}

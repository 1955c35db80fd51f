# src/studio_os/connectors/ops_notes.py
"""Read/write connector for the pilot ops-note write path.

The only cloud mutation the engine performs: appending a staff-visible ops
note to a batch, and marking it rolled back. The cloud side keys each action
by action_doc_id(proposal_id, idempotency_key), so a repeated append with the
same key comes back with replayed=True instead of creating a second note.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from studio_os.contracts.connectors import ConnectorContext, ConnectorRequest, ConnectorResult
from studio_os.contracts.enums import ConnectorErrorCode, Target
from studio_os.contracts.errors import ConnectorError
from studio_os.core.canonical import stable_hash
from studio_os.connectors.base import Connector

OPS_NOTE_APPEND = "ops_note.append"
OPS_NOTE_ROLLBACK = "ops_note.rollback"

OPS_NOTE_ACTION_TYPE = "ops_note_append"
OPS_NOTE_RESOURCE_COLLECTION = "batches"
OPS_NOTE_COLLECTION = "studioBrainPilotOpsNotes"

NOTE_MIN_LENGTH = 5
NOTE_MAX_LENGTH = 500
KEY_MIN_LENGTH = 8
KEY_MAX_LENGTH = 120
REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def action_doc_id(proposal_id: str, idempotency_key: str) -> str:
    """Cloud document id for one (proposal, key) action."""
    return f"{proposal_id}__{_UNSAFE_KEY_CHARS.sub('', idempotency_key)[:80]}"


@dataclass(frozen=True)
class OpsNotePlan:
    """Dry-run view of an ops-note append: exactly what would be written."""

    action_type: str
    owner_uid: str
    resource_collection: str
    resource_id: str
    note: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type,
            "ownerUid": self.owner_uid,
            "resourceCollection": self.resource_collection,
            "resourceId": self.resource_id,
            "note": self.note,
        }


def _bounded(value: Any, name: str, minimum: int, maximum: int) -> str:
    text = str(value if value is not None else "").strip()
    if not minimum <= len(text) <= maximum:
        raise ValueError(f"{name} must be {minimum}-{maximum} characters, got {len(text)}")
    return text


def build_ops_note_plan(input: Mapping[str, Any]) -> OpsNotePlan:
    """Validate proposal input for an ops-note append.

    Raises:
        ValueError: If a required field is missing or out of bounds
    """
    owner_uid = str(input.get("ownerUid") or "").strip()
    resource_id = str(input.get("resourceId") or "").strip()
    if not owner_uid:
        raise ValueError("ownerUid is required")
    if not resource_id:
        raise ValueError("resourceId is required")
    return OpsNotePlan(
        action_type=OPS_NOTE_ACTION_TYPE,
        owner_uid=owner_uid,
        resource_collection=OPS_NOTE_RESOURCE_COLLECTION,
        resource_id=resource_id,
        note=_bounded(input.get("note"), "note", NOTE_MIN_LENGTH, NOTE_MAX_LENGTH),
    )


def _require_ok(payload: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ConnectorError(ConnectorErrorCode.BAD_RESPONSE, f"Malformed {what} response.", False)
    if payload.get("ok") is not True:
        # Message goes through classification (e.g. "403 Forbidden" -> AUTH)
        raise RuntimeError(str(payload.get("message") or f"{what} failed."))
    return payload


class OpsNoteConnector(Connector):
    """Pilot write connector backed by the cloud functions transport."""

    id = "studio-ops-notes"
    target = Target.CLOUD
    version = "0.1.0"
    read_only = False

    def read_status(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        request = {**input, "request_id": ctx.request_id}

        def parse(payload: Any) -> ConnectorResult:
            root = payload if isinstance(payload, Mapping) else {}
            notes = root.get("notes", [])
            if not isinstance(notes, list):
                raise ConnectorError(ConnectorErrorCode.BAD_RESPONSE, "Malformed ops-note payload: notes must be an array.", False)
            return ConnectorResult(
                request_id=ctx.request_id,
                input_hash=stable_hash(request),
                output_hash=stable_hash(notes),
                payload={"notes": notes},
                raw_count=len(notes),
            )

        return self._guarded_call(ctx, "/opsNotes", request, parse)

    def _write(self, ctx: ConnectorContext, request: ConnectorRequest) -> ConnectorResult:
        if request.action == OPS_NOTE_APPEND:
            return self._append(ctx, request.input)
        if request.action == OPS_NOTE_ROLLBACK:
            return self._rollback(ctx, request.input)
        return super()._write(ctx, request)

    def _append(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        plan = build_ops_note_plan(input)
        proposal_id = str(input["proposalId"])
        key = _bounded(input.get("idempotencyKey"), "idempotencyKey", KEY_MIN_LENGTH, KEY_MAX_LENGTH)
        body = {
            **plan.to_dict(),
            "proposalId": proposal_id,
            "idempotencyKey": key,
            "approvedBy": input.get("approvedBy"),
            "approvedAt": input.get("approvedAt"),
            "actorUid": input.get("actorUid"),
        }

        def parse(payload: Any) -> ConnectorResult:
            root = _require_ok(payload, "Ops note append")
            pointer = root.get("resourcePointer")
            pointer = pointer if isinstance(pointer, Mapping) else {}
            result = {
                "actionDocId": action_doc_id(proposal_id, key),
                "replayed": root.get("replayed") is True,
                "resourcePointer": {
                    "collection": str(pointer.get("collection") or OPS_NOTE_COLLECTION),
                    "docId": str(pointer.get("docId") or ""),
                },
            }
            return ConnectorResult(
                request_id=ctx.request_id,
                input_hash=stable_hash(body),
                output_hash=stable_hash(result),
                payload=result,
            )

        return self._guarded_call(ctx, "/executeStudioBrainPilotAction", body, parse)

    def _rollback(self, ctx: ConnectorContext, input: Mapping[str, Any]) -> ConnectorResult:
        proposal_id = str(input["proposalId"])
        body = {
            "proposalId": proposal_id,
            "idempotencyKey": _bounded(input.get("idempotencyKey"), "idempotencyKey", KEY_MIN_LENGTH, KEY_MAX_LENGTH),
            "reason": _bounded(input.get("reason"), "reason", REASON_MIN_LENGTH, REASON_MAX_LENGTH),
            "actorUid": input.get("actorUid"),
        }

        def parse(payload: Any) -> ConnectorResult:
            root = _require_ok(payload, "Ops note rollback")
            result = {
                "actionDocId": action_doc_id(proposal_id, body["idempotencyKey"]),
                "replayed": root.get("replayed") is True,
            }
            return ConnectorResult(
                request_id=ctx.request_id,
                input_hash=stable_hash(body),
                output_hash=stable_hash(result),
                payload=result,
            )

        return self._guarded_call(ctx, "/rollbackStudioBrainPilotAction", body, parse)

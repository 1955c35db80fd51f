# src/studio_os/ledger/event_store.py
"""EventStore: append-only, hash-chained audit ledger.

Every state change and every decision in Studio OS lands here as one
EventRecord. Records are chained: each stores the previous record's
record_hash, and its own record_hash covers its body plus that link, so
any edit or deletion in the middle of the ledger breaks verification.

There is no update or delete API.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import desc, select

from studio_os.contracts.events import GENESIS_HASH, ChainVerification, EventDraft, EventRecord
from studio_os.core.canonical import stable_hash, to_json_safe
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.ledger._database_ops import DatabaseOps
from studio_os.ledger._helpers import as_utc, dump_json, generate_id
from studio_os.ledger.database import LedgerDB
from studio_os.ledger.repositories import EventRepository
from studio_os.ledger.schema import events_table

logger = structlog.get_logger(__name__)

_UNSET: Any = object()

# Batch size when walking the whole chain
_VERIFY_PAGE_SIZE = 500


class EventStore:
    """Append-only audit ledger backed by LedgerDB.

    Appends are serialized by a process-level lock and run in a single
    transaction (read chain head, insert), so concurrent writers in the
    same process always extend a linear chain. The unique constraint on
    events.sequence rejects a racing writer from another process.
    """

    def __init__(self, db: LedgerDB, *, clock: Clock = DEFAULT_CLOCK) -> None:
        self._db = db
        self._ops = DatabaseOps(db)
        self._clock = clock
        self._repo = EventRepository()
        self._append_lock = threading.Lock()

    def append(
        self,
        draft: EventDraft,
        *,
        input_payload: Any = _UNSET,
        output_payload: Any = _UNSET,
    ) -> EventRecord:
        """Append one immutable record.

        Args:
            draft: Event content. Precomputed hashes on the draft win.
            input_payload: Hashed into input_hash when the draft has none
            output_payload: Hashed into output_hash when the draft has none

        Raises:
            ValueError: If no input hash is available from either source
        """
        input_hash = draft.input_hash
        if input_hash is None:
            if input_payload is _UNSET:
                raise ValueError(f"Event {draft.action!r} needs input_hash or input_payload")
            input_hash = stable_hash(input_payload)
        output_hash = draft.output_hash
        if output_hash is None and output_payload is not _UNSET:
            output_hash = stable_hash(output_payload)

        metadata = to_json_safe(draft.metadata)

        with self._append_lock, self._db.connection() as conn:
            head = conn.execute(
                select(events_table.c.sequence, events_table.c.record_hash).order_by(desc(events_table.c.sequence)).limit(1)
            ).fetchone()
            sequence = 1 if head is None else head.sequence + 1
            prev_hash = GENESIS_HASH if head is None else head.record_hash

            unsigned = EventRecord(
                event_id=generate_id(),
                sequence=sequence,
                created_at=as_utc(self._clock.now()),
                actor_type=draft.actor_type,
                actor_id=draft.actor_id,
                action=draft.action,
                rationale=draft.rationale,
                target=draft.target,
                approval_state=draft.approval_state,
                input_hash=input_hash,
                output_hash=output_hash,
                metadata=metadata,
                prev_hash=prev_hash,
                record_hash="",
            )
            record_hash = stable_hash(unsigned.hash_body())
            conn.execute(
                events_table.insert().values(
                    event_id=unsigned.event_id,
                    sequence=sequence,
                    created_at=unsigned.created_at,
                    actor_type=unsigned.actor_type.value,
                    actor_id=unsigned.actor_id,
                    action=unsigned.action,
                    rationale=unsigned.rationale,
                    target=unsigned.target.value,
                    approval_state=unsigned.approval_state.value,
                    input_hash=input_hash,
                    output_hash=output_hash,
                    metadata_json=dump_json(metadata),
                    prev_hash=prev_hash,
                    record_hash=record_hash,
                )
            )

        logger.debug("event_appended", action=draft.action, sequence=sequence, record_hash=record_hash)
        return replace(unsigned, record_hash=record_hash)

    def list_recent(self, n: int) -> list[EventRecord]:
        """Return the n most recent records, newest first."""
        limit = max(1, n)
        rows = self._ops.execute_fetchall(select(events_table).order_by(desc(events_table.c.sequence)).limit(limit))
        return [self._repo.load(row) for row in rows]

    def list_range(self, *, after_sequence: int = 0, limit: int | None = None) -> list[EventRecord]:
        """Records in chain order, starting after a sequence number."""
        query = select(events_table).where(events_table.c.sequence > after_sequence).order_by(events_table.c.sequence)
        if limit is not None:
            query = query.limit(limit)
        return [self._repo.load(row) for row in self._ops.execute_fetchall(query)]

    def get(self, event_id: str) -> EventRecord | None:
        row = self._ops.execute_fetchone(select(events_table).where(events_table.c.event_id == event_id))
        return self._repo.load(row) if row is not None else None

    def count(self) -> int:
        row = self._ops.execute_fetchone(select(events_table.c.sequence).order_by(desc(events_table.c.sequence)).limit(1))
        return 0 if row is None else int(row.sequence)

    def verify_chain(self) -> ChainVerification:
        """Walk the ledger in order and recompute every link and hash."""
        expected_prev = GENESIS_HASH
        expected_sequence = 1
        checked = 0
        after = 0
        while True:
            page = self.list_range(after_sequence=after, limit=_VERIFY_PAGE_SIZE)
            if not page:
                break
            for record in page:
                if record.sequence != expected_sequence:
                    return ChainVerification(False, checked, record.sequence, f"gap: expected sequence {expected_sequence}")
                if record.prev_hash != expected_prev:
                    return ChainVerification(False, checked, record.sequence, "prev_hash does not match previous record")
                if stable_hash(record.hash_body()) != record.record_hash:
                    return ChainVerification(False, checked, record.sequence, "record_hash does not match record body")
                expected_prev = record.record_hash
                expected_sequence += 1
                checked += 1
            after = page[-1].sequence
        return ChainVerification(ok=True, records_checked=checked)


def has_recent_event(
    events: list[EventRecord],
    *,
    action: str,
    since: datetime,
    match: Callable[[Mapping[str, Any]], bool] | None = None,
) -> bool:
    """Whether any event with this action at or after `since` satisfies match(metadata).

    This is the dedupe primitive for detectors: "did this already happen
    within the window".
    """
    for record in events:
        if record.action != action or record.created_at < since:
            continue
        if match is None or match(record.metadata):
            return True
    return False

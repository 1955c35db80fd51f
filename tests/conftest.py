# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Callable, Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

import pytest
from hypothesis import HealthCheck, Phase, Verbosity, settings

from studio_os.contracts.enums import Completeness
from studio_os.contracts.state import Diagnostics, StateSnapshot
from studio_os.core.clock import MockClock
from studio_os.ledger import EventStore, LedgerDB, ProposalStore, StateStore

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Ledger fixtures
# =============================================================================


@pytest.fixture
def clock() -> MockClock:
    return MockClock(start=FIXED_NOW, monotonic_start=1000.0)


@pytest.fixture
def db() -> Iterator[LedgerDB]:
    ledger = LedgerDB.in_memory()
    yield ledger
    ledger.close()


@pytest.fixture
def event_store(db: LedgerDB, clock: MockClock) -> EventStore:
    return EventStore(db, clock=clock)


@pytest.fixture
def state_store(db: LedgerDB, clock: MockClock) -> StateStore:
    return StateStore(db, clock=clock)


@pytest.fixture
def proposal_store(db: LedgerDB) -> ProposalStore:
    return ProposalStore(db)


# =============================================================================
# Snapshot factory
# =============================================================================


def make_snapshot(
    metrics: Mapping[str, float] | None = None,
    *,
    snapshot_date: str = "2026-03-02",
    generated_at: datetime = FIXED_NOW,
    cloud_sync: Mapping[str, str | None] | None = None,
    completeness: Completeness = Completeness.FULL,
    warnings: tuple[str, ...] = (),
) -> StateSnapshot:
    """Build a snapshot directly, bypassing StateComputer."""
    return StateSnapshot(
        snapshot_date=snapshot_date,
        generated_at=generated_at,
        metrics=dict(metrics or {}),
        source_hashes={"firestore": "a" * 64},
        diagnostics=Diagnostics(completeness=completeness, warnings=warnings),
        cloud_sync=dict(cloud_sync or {}),
    )


@pytest.fixture
def snapshot_factory() -> Callable[..., StateSnapshot]:
    return make_snapshot


class FakeTransport:
    """Connector transport that replays responses per path.

    responses[path] is returned on every call (called first if it is
    callable). script() queues one-shot responses that are used before it.
    An exception instance is raised instead of returned.
    Every call is recorded as (path, input, timeout_ms).
    """

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.scripted: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, dict[str, Any], int]] = []

    def script(self, path: str, *responses: Any) -> None:
        self.scripted.setdefault(path, []).extend(responses)

    def __call__(self, path: str, payload: Mapping[str, Any], timeout_ms: int) -> Any:
        self.calls.append((path, dict(payload), timeout_ms))
        queued = self.scripted.get(path)
        response = queued.pop(0) if queued else self.responses.get(path)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(payload)
        return response

    def paths(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()

# src/studio_os/engine/scheduler.py
"""Job runner and interval scheduler.

JobRunner wraps a named handler with job-run bookkeeping in the StateStore
and a `job.<name>.succeeded|failed|skipped` ledger event. A job that is
still running when it is triggered again is skipped, never run twice.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime

import structlog

from studio_os.contracts.enums import ActorType
from studio_os.contracts.events import EventDraft
from studio_os.contracts.state import JobRunRecord
from studio_os.core.clock import DEFAULT_CLOCK, Clock
from studio_os.ledger.event_store import EventStore
from studio_os.ledger.state_store import StateStore

logger = structlog.get_logger(__name__)

JOB_ACTOR_ID = "studio-os"

# Returns a one-line summary stored on the job run.
JobHandler = Callable[[], str]


@dataclass(frozen=True)
class JobStats:
    running: bool = False
    success_count: int = 0
    failure_count: int = 0
    skip_count: int = 0
    last_started_at: datetime | None = None
    last_completed_at: datetime | None = None
    last_status: str | None = None
    last_duration_ms: int | None = None
    last_error: str | None = None


class JobRunner:
    def __init__(
        self,
        events: EventStore,
        state_store: StateStore,
        handlers: Mapping[str, JobHandler],
        *,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self._events = events
        self._state_store = state_store
        self._handlers = dict(handlers)
        self._clock = clock
        self._running: set[str] = set()
        self._stats: dict[str, JobStats] = {}
        self._lock = threading.Lock()

    def stats(self) -> dict[str, JobStats]:
        with self._lock:
            return dict(self._stats)

    def _update(self, job_name: str, **changes: object) -> None:
        with self._lock:
            self._stats[job_name] = replace(self._stats.get(job_name, JobStats()), **changes)  # type: ignore[arg-type]

    def run(self, job_name: str) -> JobRunRecord | None:
        """Run one job.

        Returns:
            The started job run, or None if the job was skipped

        Raises:
            KeyError: Unknown job
            Exception: Whatever the handler raised, after it is recorded
        """
        handler = self._handlers.get(job_name)
        if handler is None:
            raise KeyError(f"Unknown job: {job_name}")

        with self._lock:
            already_running = job_name in self._running
            if not already_running:
                self._running.add(job_name)
        if already_running:
            self._skip(job_name)
            return None

        try:
            return self._run_handler(job_name, handler)
        finally:
            with self._lock:
                self._running.discard(job_name)
            self._update(job_name, running=False)

    def _skip(self, job_name: str) -> None:
        now = self._clock.now()
        stats = self.stats().get(job_name, JobStats())
        self._update(
            job_name,
            skip_count=stats.skip_count + 1,
            last_completed_at=now,
            last_status="skipped",
            last_duration_ms=0,
            last_error="already_running",
        )
        logger.warning("job_skipped_already_running", job_name=job_name)
        self._events.append(
            EventDraft(
                actor_type=ActorType.SYSTEM,
                actor_id=JOB_ACTOR_ID,
                action=f"job.{job_name}.skipped",
                rationale="Skipped run because previous invocation is still in progress.",
                metadata={"reason": "already_running"},
            ),
            input_payload={"job_name": job_name, "skipped_at": now},
        )

    def _run_handler(self, job_name: str, handler: JobHandler) -> JobRunRecord:
        run = self._state_store.start_job_run(job_name)
        started = self._clock.monotonic()
        self._update(job_name, running=True, last_started_at=run.started_at, last_error=None)
        logger.info("job_started", job_name=job_name, run_id=run.run_id)

        try:
            summary = handler()
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self._state_store.fail_job_run(run.run_id, message)
            self._events.append(
                EventDraft(
                    actor_type=ActorType.SYSTEM,
                    actor_id=JOB_ACTOR_ID,
                    action=f"job.{job_name}.failed",
                    rationale="Scheduled job failed.",
                    metadata={"run_id": run.run_id, "error": message},
                ),
                input_payload={"run_id": run.run_id},
            )
            stats = self.stats()[job_name]
            self._update(
                job_name,
                failure_count=stats.failure_count + 1,
                last_completed_at=self._clock.now(),
                last_status="failed",
                last_duration_ms=int((self._clock.monotonic() - started) * 1000),
                last_error=message,
            )
            logger.error("job_failed", job_name=job_name, run_id=run.run_id, error=message)
            raise

        self._state_store.complete_job_run(run.run_id, summary)
        self._events.append(
            EventDraft(
                actor_type=ActorType.SYSTEM,
                actor_id=JOB_ACTOR_ID,
                action=f"job.{job_name}.succeeded",
                rationale="Scheduled job completed.",
                metadata={"run_id": run.run_id, "summary": summary},
            ),
            input_payload={"run_id": run.run_id},
            output_payload={"summary": summary},
        )
        stats = self.stats()[job_name]
        self._update(
            job_name,
            success_count=stats.success_count + 1,
            last_completed_at=self._clock.now(),
            last_status="succeeded",
            last_duration_ms=int((self._clock.monotonic() - started) * 1000),
        )
        logger.info("job_succeeded", job_name=job_name, run_id=run.run_id, summary=summary)
        return run


class IntervalScheduler:
    """Run one job every interval on a background thread.

    A failed run is already recorded by the JobRunner; the scheduler logs it
    and keeps going.
    """

    def __init__(
        self,
        runner: JobRunner,
        job_name: str,
        *,
        interval_seconds: float,
        run_on_start: bool = True,
        jitter_seconds: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._runner = runner
        self._job_name = job_name
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._jitter = max(0.0, jitter_seconds)
        self._rng = rng or random.Random()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.total_runs = 0
        self.total_failures = 0
        self.consecutive_failures = 0

    def next_delay(self) -> float:
        jitter = self._rng.uniform(0, self._jitter) if self._jitter else 0.0
        return self._interval + jitter

    def tick(self) -> None:
        """Run the job once, recording the outcome in the scheduler counters."""
        self.total_runs += 1
        try:
            self._runner.run(self._job_name)
        except Exception as exc:
            self.total_failures += 1
            self.consecutive_failures += 1
            logger.error("scheduled_run_failed", job_name=self._job_name, error=str(exc))
            return
        self.consecutive_failures = 0

    def _loop(self) -> None:
        if self._run_on_start:
            self.tick()
        while not self._stop.wait(self.next_delay()):
            self.tick()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Scheduler already started")
        self._thread = threading.Thread(target=self._loop, name=f"scheduler-{self._job_name}", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", job_name=self._job_name, interval_seconds=self._interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("scheduler_stopped", job_name=self._job_name)

    def run_forever(self) -> None:
        """Run in the calling thread until stop() is called from elsewhere."""
        self._loop()

"""Scheduled passes and the job runner that drives them."""

from studio_os.engine.passes import STATE_JOB_NAME, PassOutcome, StudioStatePass
from studio_os.engine.scheduler import IntervalScheduler, JobRunner, JobStats

__all__ = [
    "STATE_JOB_NAME",
    "IntervalScheduler",
    "JobRunner",
    "JobStats",
    "PassOutcome",
    "StudioStatePass",
]

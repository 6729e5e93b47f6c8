"""Observability store for scheduled job runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledJobState:
    job_id: str
    task: str
    runs: int = 0
    successes: int = 0
    run_failures: int = 0
    attempt_failures: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0

    def as_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        for key in ("last_started_at", "last_success_at", "last_error_at"):
            value = payload[key]
            payload[key] = value.isoformat() if value else None
        return payload


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, Dict[str, object]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, object]:
        return {"totals": dict(self.totals), "jobs": dict(self.jobs)}


class SchedulerObservabilityStore:
    """Tracks scheduler dispatches, retries and outcomes per job."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, ScheduledJobState] = {}

    def _state(self, job_id: str, task: str) -> ScheduledJobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = self._jobs[job_id] = ScheduledJobState(job_id=job_id, task=task)
        state.task = task
        return state

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.runs += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.attempt_failures += 1
            state.last_attempts = attempts
            state.last_error = error
            state.last_error_at = _utcnow()

    def record_retry(self, job_id: str, task: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.retries += 1
            state.last_attempts = attempts

    def record_success(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.successes += 1
            state.consecutive_failures = 0
            state.runtime_seconds += runtime_seconds
            state.last_attempts = attempts
            state.last_success_at = _utcnow()
            state.last_error = None

    def record_run_failure(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        attempts: int,
        error: str,
    ) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.run_failures += 1
            state.consecutive_failures += 1
            state.runtime_seconds += runtime_seconds
            state.last_attempts = attempts
            state.last_error = error
            state.last_error_at = _utcnow()

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            states = list(self._jobs.values())
            totals = {
                "runs": sum(state.runs for state in states),
                "success": sum(state.successes for state in states),
                "run_failures": sum(state.run_failures for state in states),
                "retries": sum(state.retries for state in states),
            }
            jobs = {state.job_id: state.as_dict() for state in states}
        return SchedulerSnapshot(totals=totals, jobs=jobs)

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()


_SCHEDULER_STORE = SchedulerObservabilityStore()


def get_scheduler_store() -> SchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = ["SchedulerObservabilityStore", "SchedulerSnapshot", "get_scheduler_store"]

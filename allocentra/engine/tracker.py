"""In-memory run tracker — a thread-safe status cell per run.

The allocation pass runs in a worker thread while API handlers poll from
the event loop. Every update replaces the run's snapshot under a lock, and
readers only ever receive immutable snapshots, so a poll never sees a
half-updated state.

State machine: PENDING → RUNNING → COMPLETED | FAILED. Progress never
decreases.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from allocentra.models.common import TERMINAL_RUN_STATUSES, RunStatus, utc_now
from allocentra.models.run import RunPhase

_ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.FAILED}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


class InvalidRunTransition(ValueError):
    """Raised on a state change the run state machine does not allow."""


@dataclass(frozen=True)
class RunProgress:
    """Point-in-time view of a run."""

    run_id: UUID
    status: RunStatus
    progress: float = 0.0
    current_phase: str | None = None
    error_message: str | None = None
    updated_at: datetime | None = None


class RunTracker:
    """Holds live state for runs that have not been persisted as terminal."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[UUID, RunProgress] = {}

    def register(self, run_id: UUID) -> RunProgress:
        snapshot = RunProgress(run_id=run_id, status=RunStatus.PENDING, updated_at=utc_now())
        with self._lock:
            self._runs[run_id] = snapshot
        return snapshot

    def get(self, run_id: UUID) -> RunProgress | None:
        with self._lock:
            return self._runs.get(run_id)

    def start(self, run_id: UUID) -> RunProgress:
        return self._transition(run_id, RunStatus.RUNNING)

    def update(self, run_id: UUID, phase: RunPhase, progress: float) -> RunProgress:
        """Record a phase change; progress is kept monotonic."""
        with self._lock:
            current = self._require(run_id)
            if current.status != RunStatus.RUNNING:
                raise InvalidRunTransition(
                    f"Run {run_id} is {current.status}, cannot report progress."
                )
            snapshot = replace(
                current,
                progress=max(current.progress, progress),
                current_phase=phase.value,
                updated_at=utc_now(),
            )
            self._runs[run_id] = snapshot
            return snapshot

    def listener(self, run_id: UUID):
        """Progress callback bound to one run, for AllocationEngine.execute."""

        def _on_progress(phase: RunPhase, progress: float) -> None:
            self.update(run_id, phase, progress)

        return _on_progress

    def complete(self, run_id: UUID) -> RunProgress:
        return self._transition(run_id, RunStatus.COMPLETED, progress=1.0)

    def fail(self, run_id: UUID, error_message: str) -> RunProgress:
        return self._transition(run_id, RunStatus.FAILED, error_message=error_message)

    def discard(self, run_id: UUID) -> None:
        """Forget a terminal run once its outcome is persisted."""
        with self._lock:
            current = self._runs.get(run_id)
            if current is not None and current.status in TERMINAL_RUN_STATUSES:
                del self._runs[run_id]

    def _transition(self, run_id: UUID, status: RunStatus, **changes) -> RunProgress:
        with self._lock:
            current = self._require(run_id)
            if status not in _ALLOWED_TRANSITIONS[current.status]:
                raise InvalidRunTransition(
                    f"Run {run_id}: {current.status} -> {status} is not allowed."
                )
            snapshot = replace(current, status=status, updated_at=utc_now(), **changes)
            self._runs[run_id] = snapshot
            return snapshot

    def _require(self, run_id: UUID) -> RunProgress:
        try:
            return self._runs[run_id]
        except KeyError:
            raise KeyError(f"Run {run_id} is not tracked.") from None


_tracker = RunTracker()


def get_run_tracker() -> RunTracker:
    """Process-wide tracker, injectable via FastAPI Depends."""
    return _tracker

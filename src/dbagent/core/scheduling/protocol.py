"""Scheduler protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER COLLABORATORS                                                      │
│                                                                               │
│  The scheduler operates as "beat-as-poller": a backend controls WHEN ticks   │
│  happen, SchedulerService controls WHAT happens on each tick, the store is   │
│  the only coordination point between workers, and the executor does the     │
│  actual playbook work.                                                        │
│                                                                               │
│   ┌─────────────────┐   tick()   ┌──────────────────┐  run()  ┌───────────┐  │
│   │ SchedulerBackend│ ─────────► │ SchedulerService │ ──────► │ Playbook  │  │
│   │ (thread / APS)  │            │                  │         │ Executor  │  │
│   └─────────────────┘            └────────┬─────────┘         └───────────┘  │
│                                           │                                   │
│                                           ▼                                   │
│                                  ┌──────────────────┐                         │
│                                  │  ScheduleStore   │                         │
│                                  │  list / claim /  │                         │
│                                  │  write back      │                         │
│                                  └──────────────────┘                         │
│                                                                               │
│  Responsibility Split:                                                        │
│  - Backend: timing only (thread wait, APScheduler interval job)              │
│  - Service: eligibility, selection, claim, execute, reconcile                │
│  - Store: atomic claim and single-statement write-back                       │
│  - Executor: one playbook run, reported as a PlaybookOutcome                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from dbagent.core.models.schedule import Schedule

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for pluggable scheduler timing backends.

    A backend is responsible ONLY for timing: it calls the tick callback
    once right away and then again ``interval_seconds`` after each tick
    finishes.  All schedule evaluation lives in SchedulerService.

    Implementations:
        - ThreadSchedulerBackend: stdlib threading (default)
        - APSchedulerBackend: APScheduler 3.x (requires [apscheduler] extra)
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        """Start the scheduler loop.

        Args:
            tick_callback: Async function to call on each tick.
            interval_seconds: Pause between the end of one tick and the
                start of the next (default: 60s).
        """
        ...

    def stop(self) -> None:
        """Stop the scheduler loop gracefully.

        No new tick starts after this is called; an in-flight tick is
        allowed to finish.
        """
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool, whether backend is running
                - backend: str, backend name
                - tick_count: int, number of ticks executed
                - last_tick: str | None, ISO timestamp of last tick
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }


@runtime_checkable
class ScheduleStore(Protocol):
    """The persistence operations the scheduler loop depends on.

    :class:`~dbagent.core.scheduling.repository.ScheduleRepository` is the
    SQL implementation; tests may substitute an in-memory fake.
    """

    def list_all(self) -> list[Schedule]:
        """Every schedule row, enabled or not."""
        ...

    def claim_running(self, schedule: Schedule, stale_before: datetime) -> bool:
        """Atomically move *schedule* to ``running``.

        Succeeds only if the row still carries the observed version, is
        enabled, and is either ``scheduled`` or a ``running`` row whose
        ``next_run`` is at or before *stale_before*.  Returns ``True`` iff
        exactly one row changed.
        """
        ...

    def write_run_result(self, schedule: Schedule) -> None:
        """Persist status, last_run, next_run and failures in one write."""
        ...

    def initialize_next_run(self, schedule_id: str, next_run: datetime) -> bool:
        """Set ``next_run`` on a row that has none yet."""
        ...

    def get(self, schedule_id: str) -> Schedule | None:
        ...

    def set_enabled(self, schedule_id: str, enabled: bool, now: datetime | None = None) -> Schedule | None:
        ...

    def count_enabled(self) -> int:
        ...

    def record_run(self, spec: Any, keep_history: int = 300) -> Any:
        """Append one run to the schedule's history."""
        ...


@dataclass
class PlaybookOutcome:
    """What an executor reports back for one playbook run."""

    succeeded: bool
    result: str | None = None
    summary: str | None = None
    notification_level: str | None = None
    error: str | None = None


@runtime_checkable
class PlaybookExecutor(Protocol):
    """Runs one playbook against one database connection.

    Implementations may take minutes.  Returning an outcome with
    ``succeeded=False`` and raising are both treated as a failed run.
    """

    async def run(
        self,
        playbook: str,
        connection_id: str,
        user_id: str,
        project_id: str,
        *,
        additional_instructions: str | None = None,
        model: str | None = None,
    ) -> PlaybookOutcome:
        ...

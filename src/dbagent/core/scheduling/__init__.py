"""Playbook scheduler for dbagent.

Every worker process polls the shared ``schedules`` table on a fixed
interval.  Each tick it works out which schedules are due, takes a bounded
random sample of them, claims each one with an atomic compare-and-set,
runs its playbook through a :class:`PlaybookExecutor`, and writes the
schedule back as ``scheduled`` with a fresh ``next_run``.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DBAGENT SCHEDULER                                                            │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from dbagent.core.connection import create_connection              │   │
│  │   from dbagent.core.scheduling import ScheduleCreate, create_scheduler│   │
│  │                                                                      │   │
│  │   conn, _ = create_connection("sqlite:///data/dbagent.db",           │   │
│  │                               init_schema=True)                      │   │
│  │   scheduler = create_scheduler(conn)                                 │   │
│  │                                                                      │   │
│  │   scheduler.repository.create(ScheduleCreate(                        │   │
│  │       project_id="p-1",                                              │   │
│  │       connection_id="c-1",                                           │   │
│  │       user_id="u-1",                                                 │   │
│  │       playbook="tableBloat",                                         │   │
│  │       cron_expression="0 * * * *",                                   │   │
│  │   ))                                                                 │   │
│  │   scheduler.start()                                                  │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Modules:                                                                     │
│  - next_run:     cron / automatic / fallback next-run computation            │
│  - eligibility:  due or crash-recoverable schedules                          │
│  - selection:    per-tick parallelism ceiling                                │
│  - transitions:  claim cutoff and reconcile                                  │
│  - repository:   SQL store with CAS claim and run history                    │
│  - service:      the scheduler loop                                          │
│  - backends:     thread (default) and APScheduler timing                     │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: cron expression parsing                                         │
│  - apscheduler: APScheduler backend (optional)                               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from .eligibility import filter_eligible, is_eligible
from .executors import LoggingPlaybookExecutor, load_executor
from .next_run import compute_next_run, validate_schedule_config
from .protocol import (
    BackendHealth,
    PlaybookExecutor,
    PlaybookOutcome,
    SchedulerBackend,
    ScheduleStore,
)
from .repository import (
    ScheduleCreate,
    ScheduleRepository,
    ScheduleRunCreate,
    ScheduleUpdate,
)
from .selection import select_for_tick
from .service import (
    RunDisposition,
    SchedulerHealth,
    SchedulerService,
    SchedulerStats,
    TickResult,
)
from .thread_backend import ThreadSchedulerBackend
from .transitions import claim_cutoff, reconcile_schedule

if TYPE_CHECKING:
    from dbagent.core.protocols import Connection
    from dbagent.core.settings import DbAgentSettings


def __getattr__(name: str):  # noqa: N807
    """Lazy import the APScheduler backend so the extra stays optional."""
    if name == "APSchedulerBackend":
        from .apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Protocol
    "SchedulerBackend",
    "BackendHealth",
    "ScheduleStore",
    "PlaybookExecutor",
    "PlaybookOutcome",
    # Backends
    "ThreadSchedulerBackend",
    "APSchedulerBackend",
    # Pure scheduling logic
    "compute_next_run",
    "validate_schedule_config",
    "is_eligible",
    "filter_eligible",
    "select_for_tick",
    "claim_cutoff",
    "reconcile_schedule",
    # Repository
    "ScheduleRepository",
    "ScheduleCreate",
    "ScheduleUpdate",
    "ScheduleRunCreate",
    # Executors
    "LoggingPlaybookExecutor",
    "load_executor",
    # Service
    "SchedulerService",
    "SchedulerStats",
    "SchedulerHealth",
    "TickResult",
    "RunDisposition",
    "create_scheduler",
]


def create_backend(name: str, shutdown_timeout: float = 30.0) -> SchedulerBackend:
    """Build a timing backend by name (``"thread"`` or ``"apscheduler"``)."""
    if name == "thread":
        return ThreadSchedulerBackend(shutdown_timeout=shutdown_timeout)
    if name == "apscheduler":
        from .apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend()
    from dbagent.core.errors import ConfigError

    raise ConfigError(f"Unknown scheduler backend: {name!r}", context={"backend": name})


def create_scheduler(
    conn: Connection,
    executor: PlaybookExecutor | None = None,
    settings: DbAgentSettings | None = None,
    *,
    backend: SchedulerBackend | None = None,
) -> SchedulerService:
    """Factory function to create a complete scheduler service.

    This is the recommended way to create a scheduler with all components
    wired together from :class:`~dbagent.core.settings.DbAgentSettings`.

    Args:
        conn: Database connection holding the ``schedules`` table
        executor: Playbook executor (default: the configured import path)
        settings: Settings to use (default: ``get_settings()``)
        backend: Timing backend (default: the configured backend)

    Returns:
        Configured SchedulerService

    Example:
        >>> scheduler = create_scheduler(conn)
        >>> scheduler.start()
    """
    if settings is None:
        from dbagent.core.settings import get_settings

        settings = get_settings()

    if backend is None:
        backend = create_backend(settings.scheduler_backend.value, settings.shutdown_timeout_seconds)

    return SchedulerService(
        backend=backend,
        repository=ScheduleRepository(conn),
        executor=executor or load_executor(settings.playbook_executor),
        interval_seconds=settings.scheduler_interval_seconds,
        max_parallel_runs=settings.max_parallel_runs,
        recovery_timeout=timedelta(seconds=settings.timeout_for_running_schedule_secs),
        instance_id=settings.instance_id,
    )

"""Scheduler service - main orchestrator.

The SchedulerService combines a backend (timing), a schedule store (data
and coordination) and a playbook executor (work) into the scheduler loop.
The beat-as-poller pattern decouples timing from schedule evaluation, so
``tick()`` can be driven by a thread, by APScheduler, by an HTTP endpoint
or directly by a test.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE ARCHITECTURE                                               │
│                                                                               │
│   tick()                                                                      │
│     │                                                                         │
│     ├── 1. store.list_all()              (failure ends the tick)             │
│     ├── 2. bootstrap next_run = NULL     (initialize_next_run)               │
│     ├── 3. eligibility filter            (scheduled & due, or stuck)         │
│     ├── 4. parallelism selector          (random sample of ≤ cap)            │
│     └── 5. gather(claim_and_run(s) for s in selected)                        │
│                                                                               │
│   claim_and_run(schedule, now)                                                │
│     │                                                                         │
│     ├── a. store.claim_running()  ──False──► skipped (another worker won)    │
│     ├── b. executor.run()                   (raise or succeeded=False        │
│     │                                        both count as failure)          │
│     ├── c. reconcile_schedule() → store.write_run_result()                   │
│     └── d. store.record_run()               (history; errors only logged)    │
│                                                                               │
│  Cross-process safety rests entirely on the store's compare-and-set claim.   │
│  A worker that dies mid-run leaves the row ``running``; any worker may      │
│  reclaim it once ``next_run + recovery_timeout`` has passed.                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from dbagent.core.errors import ScheduleConfigError, ScheduleNotFoundError, StoreError, as_execution_error
from dbagent.core.logging import bind_context, get_logger, unbind_context
from dbagent.core.models.schedule import Schedule, ScheduleRunStatus
from dbagent.core.timestamps import utc_now

from .eligibility import filter_eligible
from .next_run import compute_next_run
from .protocol import PlaybookExecutor, PlaybookOutcome, SchedulerBackend, ScheduleStore
from .repository import ScheduleRunCreate
from .selection import select_for_tick
from .transitions import claim_cutoff, reconcile_schedule

logger = get_logger(__name__)


class RunDisposition(str, Enum):
    """What claim-and-run did with one schedule."""

    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SchedulerStats:
    """Statistics for scheduler service."""

    tick_count: int = 0
    schedules_processed: int = 0
    schedules_skipped: int = 0
    schedules_failed: int = 0
    schedules_deferred: int = 0
    errors: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "schedules_processed": self.schedules_processed,
            "schedules_skipped": self.schedules_skipped,
            "schedules_failed": self.schedules_failed,
            "schedules_deferred": self.schedules_deferred,
            "errors": self.errors,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class TickResult:
    """Summary of one scheduler tick."""

    started_at: datetime
    initialized: int = 0
    eligible: int = 0
    selected: int = 0
    deferred: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "initialized": self.initialized,
            "eligible": self.eligible,
            "selected": self.selected,
            "deferred": self.deferred,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
            "error": self.error,
        }


@dataclass
class SchedulerHealth:
    """Health status for scheduler service."""

    healthy: bool
    backend: dict[str, Any]
    schedules_enabled: int | None = 0
    last_tick: datetime | None = None
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "schedules_enabled": self.schedules_enabled,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Main scheduler orchestrator, beat-as-poller pattern.

    Example:
        >>> from dbagent.core.scheduling import (
        ...     LoggingPlaybookExecutor,
        ...     ScheduleRepository,
        ...     SchedulerService,
        ...     ThreadSchedulerBackend,
        ... )
        >>>
        >>> service = SchedulerService(
        ...     backend=ThreadSchedulerBackend(),
        ...     repository=ScheduleRepository(conn),
        ...     executor=LoggingPlaybookExecutor(),
        ... )
        >>> service.start()
        >>>
        >>> # Later...
        >>> service.stop()
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        repository: ScheduleStore,
        executor: PlaybookExecutor,
        interval_seconds: float = 60.0,
        max_parallel_runs: int = 20,
        recovery_timeout: timedelta = timedelta(minutes=15),
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        instance_id: str | None = None,
    ) -> None:
        """Initialize scheduler service.

        Args:
            backend: Timing backend (thread or APScheduler)
            repository: Schedule store shared by all workers
            executor: Runs the playbooks
            interval_seconds: Pause between ticks (default: 60s)
            max_parallel_runs: Most schedules one tick may run (default: 20)
            recovery_timeout: How long past ``next_run`` a ``running``
                schedule may stay claimed before it is reclaimable
            clock: Source of "now" (tests inject a fixed clock)
            rng: Random source for the parallelism selector
            instance_id: Worker identity included in logs
        """
        self.backend = backend
        self.repository = repository
        self.executor = executor
        self.interval = interval_seconds
        self.max_parallel_runs = max_parallel_runs
        self.recovery_timeout = recovery_timeout
        self.instance_id = instance_id or uuid.uuid4().hex[:12]

        self._clock = clock
        self._rng = rng
        self._stats = SchedulerStats()
        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        """Start the scheduler service.

        The backend runs the first tick immediately.
        """
        if self._running:
            logger.warning("scheduler.already_running", instance_id=self.instance_id)
            return

        logger.info(
            "scheduler.starting",
            instance_id=self.instance_id,
            backend=self.backend.name,
            interval_seconds=self.interval,
            max_parallel_runs=self.max_parallel_runs,
            recovery_timeout_seconds=self.recovery_timeout.total_seconds(),
        )
        self.backend.start(self._tick, self.interval)
        self._running = True

    def stop(self) -> None:
        """Stop the scheduler service gracefully.

        No new tick starts; an in-flight tick runs to completion.
        """
        if not self._running:
            return

        logger.info("scheduler.stopping", instance_id=self.instance_id)
        self.backend.stop()
        self._running = False
        logger.info("scheduler.stopped", instance_id=self.instance_id)

    @property
    def is_running(self) -> bool:
        """Check if service is running."""
        return self._running

    # === Tick Processing ===

    async def _tick(self) -> None:
        await self.tick()

    async def tick(self) -> TickResult:
        """Single scheduler pass: bootstrap, select, claim and run."""
        now = self._clock()
        self._stats.tick_count += 1
        self._stats.last_tick = now
        result = TickResult(started_at=now)

        try:
            schedules = self.repository.list_all()
        except StoreError as exc:
            self._record_error(result, exc)
            logger.error("scheduler.list_failed", instance_id=self.instance_id, error=str(exc))
            return result

        schedules = self._bootstrap(schedules, now, result)

        eligible = filter_eligible(schedules, now, self.recovery_timeout)
        selected = select_for_tick(eligible, self.max_parallel_runs, self._rng)
        result.eligible = len(eligible)
        result.selected = len(selected)
        result.deferred = len(eligible) - len(selected)
        self._stats.schedules_deferred += result.deferred

        if result.deferred:
            logger.info(
                "scheduler.runs_deferred",
                eligible=result.eligible,
                selected=result.selected,
                deferred=result.deferred,
            )

        if selected:
            outcomes = await asyncio.gather(
                *(self.claim_and_run(schedule, now) for schedule in selected),
                return_exceptions=True,
            )
            for schedule, outcome in zip(selected, outcomes, strict=True):
                if isinstance(outcome, RunDisposition):
                    self._count(result, outcome)
                elif isinstance(outcome, Exception):
                    self._record_error(result, outcome)
                    logger.error(
                        "schedule.processing_failed",
                        schedule_id=schedule.id,
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                else:
                    raise outcome

        logger.info(
            "scheduler.tick_finished",
            instance_id=self.instance_id,
            schedules=len(schedules),
            eligible=result.eligible,
            completed=result.completed,
            failed=result.failed,
            skipped=result.skipped,
            deferred=result.deferred,
            errors=result.errors,
        )
        return result

    def _bootstrap(self, schedules: list[Schedule], now: datetime, result: TickResult) -> list[Schedule]:
        """Give enabled schedules without a ``next_run`` their first one."""
        for schedule in schedules:
            if not schedule.enabled or schedule.next_run is not None:
                continue
            try:
                next_run = compute_next_run(schedule, now)
            except ScheduleConfigError as exc:
                logger.error("schedule.bootstrap_invalid", schedule_id=schedule.id, error=exc.message)
                continue

            try:
                initialized = self.repository.initialize_next_run(schedule.id, next_run)
            except StoreError as exc:
                logger.error("schedule.bootstrap_failed", schedule_id=schedule.id, error=str(exc))
                continue

            if initialized:
                schedule.next_run = next_run
                result.initialized += 1
                logger.info("schedule.next_run_initialized", schedule_id=schedule.id, next_run=next_run.isoformat())
        return schedules

    async def claim_and_run(self, schedule: Schedule, now: datetime) -> RunDisposition:
        """Claim *schedule*, run its playbook and reconcile it.

        Returns:
            ``SKIPPED`` if another worker holds the claim, otherwise whether
            the playbook run completed or failed.

        Raises:
            StoreError: The claim or the write-back failed.  A failed
                write-back leaves the row ``running`` until it is reclaimed.
        """
        bind_context(schedule_id=schedule.id, playbook=schedule.playbook)
        try:
            if not self.repository.claim_running(schedule, claim_cutoff(now, self.recovery_timeout)):
                logger.debug("schedule.claim_lost")
                return RunDisposition.SKIPPED

            logger.info("schedule.claimed", instance_id=self.instance_id, status=schedule.status)
            outcome = await self._execute(schedule)

            reconciled = reconcile_schedule(schedule, now, outcome.succeeded)
            self.repository.write_run_result(reconciled)

            self._record_history(schedule, outcome, now)

            if outcome.succeeded:
                logger.info(
                    "schedule.run_completed",
                    next_run=reconciled.next_run.isoformat() if reconciled.next_run else None,
                    notification_level=outcome.notification_level,
                )
                return RunDisposition.COMPLETED

            logger.warning(
                "schedule.run_failed",
                failures=reconciled.failures,
                error=outcome.error,
                next_run=reconciled.next_run.isoformat() if reconciled.next_run else None,
            )
            return RunDisposition.FAILED
        finally:
            unbind_context("schedule_id", "playbook")

    async def _execute(self, schedule: Schedule) -> PlaybookOutcome:
        try:
            return await self.executor.run(
                schedule.playbook,
                schedule.connection_id,
                schedule.user_id,
                schedule.project_id,
                additional_instructions=schedule.additional_instructions,
                model=schedule.model,
            )
        except Exception as exc:
            error = as_execution_error(schedule.playbook, exc)
            logger.exception("schedule.executor_raised", **error.to_dict())
            return PlaybookOutcome(succeeded=False, error=error.message)

    def _record_history(self, schedule: Schedule, outcome: PlaybookOutcome, now: datetime) -> None:
        status = ScheduleRunStatus.COMPLETED if outcome.succeeded else ScheduleRunStatus.FAILED
        try:
            self.repository.record_run(
                ScheduleRunCreate(
                    schedule_id=schedule.id,
                    status=status.value,
                    result=outcome.result,
                    summary=outcome.summary,
                    notification_level=outcome.notification_level,
                    error=outcome.error,
                    created_at=now,
                ),
                keep_history=schedule.keep_history,
            )
        except StoreError as exc:
            logger.warning("schedule.history_failed", error=str(exc))

    def _count(self, result: TickResult, disposition: RunDisposition) -> None:
        if disposition is RunDisposition.COMPLETED:
            result.completed += 1
            self._stats.schedules_processed += 1
        elif disposition is RunDisposition.FAILED:
            result.failed += 1
            self._stats.schedules_failed += 1
        else:
            result.skipped += 1
            self._stats.schedules_skipped += 1

    def _record_error(self, result: TickResult, error: Exception) -> None:
        result.errors += 1
        result.error = str(error)
        self._stats.errors += 1
        self._stats.last_error = str(error)

    # === Manual Operations ===

    async def trigger(self, schedule_id: str) -> RunDisposition:
        """Run one schedule now, regardless of its ``next_run``.

        The usual claim still applies, so a schedule that is already
        running elsewhere is skipped.

        Raises:
            ScheduleNotFoundError: If schedule not found
        """
        schedule = self.repository.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)

        disposition = await self.claim_and_run(schedule, self._clock())
        logger.info("schedule.triggered", schedule_id=schedule_id, disposition=disposition.value)
        return disposition

    def pause(self, schedule_id: str) -> Schedule:
        """Disable a schedule; it keeps no ``next_run`` while paused.

        Raises:
            ScheduleNotFoundError: If schedule not found
        """
        schedule = self.repository.set_enabled(schedule_id, False, self._clock())
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def resume(self, schedule_id: str) -> Schedule:
        """Re-enable a schedule with ``next_run`` computed from now.

        Raises:
            ScheduleNotFoundError: If schedule not found
            ScheduleConfigError: If its cadence is invalid
        """
        schedule = self.repository.set_enabled(schedule_id, True, self._clock())
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        """Get scheduler health status."""
        backend_health = self.backend.health()
        try:
            enabled: int | None = self.repository.count_enabled()
        except StoreError as exc:
            logger.warning("scheduler.health_store_unavailable", error=str(exc))
            enabled = None

        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)) and enabled is not None,
            backend=backend_health,
            schedules_enabled=enabled,
            last_tick=self._stats.last_tick,
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        """Get scheduler statistics."""
        return self._stats

    def reset_stats(self) -> None:
        """Reset scheduler statistics."""
        self._stats = SchedulerStats()

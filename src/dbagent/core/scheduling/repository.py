"""Schedule repository - CRUD, atomic claim, and run history.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE REPOSITORY                                                          │
│                                                                               │
│  Responsibility: schedule persistence and the claim that makes several       │
│  worker processes safe to run against one table.                             │
│                                                                               │
│  ┌────────────────────────────────────────────────────────────────────┐      │
│  │                      ScheduleRepository                            │      │
│  │                                                                    │      │
│  │   CRUD Operations:                                                 │      │
│  │   ├── create(spec) → Schedule                                      │      │
│  │   ├── get(id) → Schedule | None                                    │      │
│  │   ├── update(id, updates) → Schedule | None                        │      │
│  │   ├── delete(id) → bool                                            │      │
│  │   ├── set_enabled(id, enabled, now) → Schedule | None              │      │
│  │   └── list_all() / list_by_project(project_id)                     │      │
│  │                                                                    │      │
│  │   Scheduling Operations:                                           │      │
│  │   ├── claim_running(schedule, stale_before) → bool   (CAS)         │      │
│  │   ├── write_run_result(schedule) → None              (1 UPDATE)    │      │
│  │   └── initialize_next_run(id, next_run) → bool       (IS NULL)     │      │
│  │                                                                    │      │
│  │   Schedule Run Operations:                                         │      │
│  │   ├── record_run(spec, keep_history) → ScheduleRun                 │      │
│  │   ├── get_run(run_id) → ScheduleRun | None                         │      │
│  │   └── list_runs(schedule_id) → list[ScheduleRun]                   │      │
│  └────────────────────────────────────────────────────────────────────┘      │
│                                                                               │
│  Claim (compare-and-set on id + version):                                    │
│                                                                               │
│      UPDATE schedules SET status = 'running', version = version + 1          │
│      WHERE id = ? AND version = ? AND enabled = 1                            │
│        AND (status = 'scheduled'                                             │
│             OR (status = 'running' AND next_run <= ?stale_before))           │
│                                                                               │
│  Exactly one of any number of racers that observed the same row sees        │
│  rowcount == 1.  Timestamps are stored in one sortable UTC format so the    │
│  ``next_run <= ?`` comparison is correct on SQLite and PostgreSQL alike.    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any
from uuid import uuid4

from dbagent.core.errors import DbAgentError, StoreError
from dbagent.core.logging import get_logger
from dbagent.core.models.schedule import (
    Schedule,
    ScheduleRun,
    ScheduleRunStatus,
    ScheduleStatus,
    ScheduleType,
)
from dbagent.core.protocols import Connection
from dbagent.core.scheduling.next_run import compute_next_run, validate_schedule_config
from dbagent.core.timestamps import from_storage, to_storage, utc_now

logger = get_logger(__name__)


_SCHEDULE_COLUMNS = (
    "id",
    "project_id",
    "connection_id",
    "user_id",
    "playbook",
    "schedule_type",
    "cron_expression",
    "min_interval_seconds",
    "max_interval_seconds",
    "additional_instructions",
    "model",
    "enabled",
    "status",
    "last_run",
    "next_run",
    "failures",
    "keep_history",
    "created_at",
    "updated_at",
    "version",
)

_RUN_COLUMNS = (
    "id",
    "schedule_id",
    "status",
    "result",
    "summary",
    "notification_level",
    "error",
    "created_at",
)

_SELECT_SCHEDULES = f"SELECT {', '.join(_SCHEDULE_COLUMNS)} FROM schedules"
_SELECT_RUNS = f"SELECT {', '.join(_RUN_COLUMNS)} FROM schedule_runs"


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class ScheduleCreate:
    """DTO for creating a new schedule."""

    project_id: str
    connection_id: str
    user_id: str
    playbook: str
    schedule_type: str = ScheduleType.CRON.value
    cron_expression: str | None = None
    min_interval_seconds: int | None = None
    max_interval_seconds: int | None = None
    additional_instructions: str | None = None
    model: str = "openai-gpt-4o"
    enabled: bool = True
    keep_history: int = 300


@dataclass
class ScheduleUpdate:
    """DTO for updating a schedule.  ``None`` leaves a field unchanged."""

    playbook: str | None = None
    schedule_type: str | None = None
    cron_expression: str | None = None
    min_interval_seconds: int | None = None
    max_interval_seconds: int | None = None
    additional_instructions: str | None = None
    model: str | None = None
    keep_history: int | None = None

    def changes_cadence(self) -> bool:
        return any(
            value is not None
            for value in (self.schedule_type, self.cron_expression, self.min_interval_seconds)
        )


@dataclass
class ScheduleRunCreate:
    """DTO for recording one playbook execution."""

    schedule_id: str
    status: str = ScheduleRunStatus.COMPLETED.value
    result: str | None = None
    summary: str | None = None
    notification_level: str | None = None
    error: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class ScheduleRepository:
    """SQL schedule store.

    Every public method runs under one re-entrant lock because the
    connection adapters share a single cursor between ``execute`` and
    ``fetch*``.  Database failures surface as :class:`StoreError` with the
    driver exception chained.

    Example:
        >>> repo = ScheduleRepository(conn)
        >>> schedule = repo.create(ScheduleCreate(
        ...     project_id="p-1",
        ...     connection_id="c-1",
        ...     user_id="u-1",
        ...     playbook="tableBloat",
        ...     cron_expression="0 * * * *",
        ... ))
        >>> repo.claim_running(schedule, stale_before=utc_now())
        True
    """

    def __init__(self, conn: Connection) -> None:
        """Initialize repository with database connection.

        Args:
            conn: Database connection (any backend satisfying Connection protocol)
        """
        self.conn = conn
        self._lock = threading.RLock()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except DbAgentError:
                raise
            except Exception as exc:
                try:
                    self.conn.rollback()
                except Exception as rollback_exc:
                    logger.warning("store.rollback_failed", operation=operation, error=str(rollback_exc))
                raise StoreError(
                    f"{operation} failed: {exc}",
                    context={"operation": operation},
                    cause=exc,
                ) from exc

    # === CRUD Operations ===

    def create(self, spec: ScheduleCreate, now: datetime | None = None) -> Schedule:
        """Create a new schedule.

        The cadence is validated first.  Enabled schedules get their first
        ``next_run`` immediately; disabled ones have none until resumed.

        Raises:
            ScheduleConfigError: The cadence is invalid.
        """
        validate_schedule_config(spec.schedule_type, spec.cron_expression, spec.min_interval_seconds)

        now = now or utc_now()
        schedule = Schedule(
            id=str(uuid4()),
            project_id=spec.project_id,
            connection_id=spec.connection_id,
            user_id=spec.user_id,
            playbook=spec.playbook,
            schedule_type=spec.schedule_type,
            cron_expression=spec.cron_expression,
            min_interval_seconds=spec.min_interval_seconds,
            max_interval_seconds=spec.max_interval_seconds,
            additional_instructions=spec.additional_instructions,
            model=spec.model,
            enabled=spec.enabled,
            status=ScheduleStatus.SCHEDULED.value,
            keep_history=spec.keep_history,
            created_at=now,
            updated_at=now,
        )
        if schedule.enabled:
            schedule.next_run = compute_next_run(schedule, now)

        with self._guard("create schedule"):
            self.conn.execute(
                f"INSERT INTO schedules ({', '.join(_SCHEDULE_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _SCHEDULE_COLUMNS)})",
                self._schedule_params(schedule),
            )
            self.conn.commit()

        logger.info(
            "schedule.created",
            schedule_id=schedule.id,
            project_id=schedule.project_id,
            playbook=schedule.playbook,
            schedule_type=schedule.schedule_type,
        )
        return schedule

    def get(self, schedule_id: str) -> Schedule | None:
        """Get schedule by ID."""
        with self._guard("get schedule"):
            cursor = self.conn.execute(f"{_SELECT_SCHEDULES} WHERE id = ?", (schedule_id,))
            row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_schedule(row)

    def list_all(self) -> list[Schedule]:
        """List all schedules (enabled and disabled)."""
        with self._guard("list schedules"):
            cursor = self.conn.execute(f"{_SELECT_SCHEDULES} ORDER BY created_at, id")
            rows = cursor.fetchall()
        return [self._row_to_schedule(row) for row in rows]

    def list_by_project(self, project_id: str) -> list[Schedule]:
        """List the schedules of one project."""
        with self._guard("list project schedules"):
            cursor = self.conn.execute(
                f"{_SELECT_SCHEDULES} WHERE project_id = ? ORDER BY created_at, id",
                (project_id,),
            )
            rows = cursor.fetchall()
        return [self._row_to_schedule(row) for row in rows]

    def count_enabled(self) -> int:
        """Count enabled schedules."""
        with self._guard("count schedules"):
            cursor = self.conn.execute("SELECT COUNT(*) FROM schedules WHERE enabled = 1")
            row = cursor.fetchone()
        return int(row[0]) if row else 0

    def update(self, schedule_id: str, updates: ScheduleUpdate, now: datetime | None = None) -> Schedule | None:
        """Update a schedule's definition.

        A cadence change is validated against the merged definition and,
        for an enabled schedule, yields a fresh ``next_run``.

        Returns:
            Updated Schedule if found, None otherwise
        """
        with self._lock:
            current = self.get(schedule_id)
            if current is None:
                return None

            now = now or utc_now()
            merged = replace(current)
            for name in (
                "playbook",
                "schedule_type",
                "cron_expression",
                "min_interval_seconds",
                "max_interval_seconds",
                "additional_instructions",
                "model",
                "keep_history",
            ):
                value = getattr(updates, name)
                if value is not None:
                    setattr(merged, name, value)

            if updates.changes_cadence():
                validate_schedule_config(merged.schedule_type, merged.cron_expression, merged.min_interval_seconds)
                if merged.enabled:
                    merged.next_run = compute_next_run(merged, now)

            with self._guard("update schedule"):
                self.conn.execute(
                    """
                    UPDATE schedules
                    SET playbook = ?, schedule_type = ?, cron_expression = ?,
                        min_interval_seconds = ?, max_interval_seconds = ?,
                        additional_instructions = ?, model = ?, keep_history = ?,
                        next_run = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        merged.playbook,
                        merged.schedule_type,
                        merged.cron_expression,
                        merged.min_interval_seconds,
                        merged.max_interval_seconds,
                        merged.additional_instructions,
                        merged.model,
                        merged.keep_history,
                        to_storage(merged.next_run),
                        to_storage(now),
                        schedule_id,
                    ),
                )
                self.conn.commit()

            return self.get(schedule_id)

    def delete(self, schedule_id: str) -> bool:
        """Delete a schedule and its run history.

        Returns:
            True if deleted, False if not found
        """
        with self._guard("delete schedule"):
            self.conn.execute("DELETE FROM schedule_runs WHERE schedule_id = ?", (schedule_id,))
            cursor = self.conn.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
            deleted = cursor.rowcount > 0
            self.conn.commit()

        if deleted:
            logger.info("schedule.deleted", schedule_id=schedule_id)
        return deleted

    def set_enabled(self, schedule_id: str, enabled: bool, now: datetime | None = None) -> Schedule | None:
        """Enable or disable a schedule.

        Enabling computes ``next_run`` from *now*; disabling clears it.  A
        row that is currently ``running`` keeps that status so the worker
        that claimed it can still reconcile.

        Returns:
            Updated Schedule if found, None otherwise

        Raises:
            ScheduleConfigError: Enabling a schedule whose cadence is invalid.
        """
        with self._lock:
            current = self.get(schedule_id)
            if current is None:
                return None

            now = now or utc_now()
            next_run = compute_next_run(current, now) if enabled else None

            with self._guard("toggle schedule"):
                self.conn.execute(
                    """
                    UPDATE schedules
                    SET enabled = ?, next_run = ?, updated_at = ?,
                        status = CASE WHEN status = 'running' THEN status ELSE 'scheduled' END
                    WHERE id = ?
                    """,
                    (1 if enabled else 0, to_storage(next_run), to_storage(now), schedule_id),
                )
                self.conn.commit()

            logger.info("schedule.enabled" if enabled else "schedule.disabled", schedule_id=schedule_id)
            return self.get(schedule_id)

    # === Scheduling Operations ===

    def claim_running(self, schedule: Schedule, stale_before: datetime) -> bool:
        """Atomically claim *schedule* for this worker.

        Args:
            schedule: Snapshot read earlier in this tick; its ``version``
                is the compare-and-set token.
            stale_before: A ``running`` row whose ``next_run`` is at or
                before this instant is considered abandoned.

        Returns:
            True iff this call moved the row to ``running``.
        """
        with self._guard("claim schedule"):
            cursor = self.conn.execute(
                """
                UPDATE schedules
                SET status = 'running', version = version + 1
                WHERE id = ? AND version = ? AND enabled = 1
                  AND (status = 'scheduled' OR (status = 'running' AND next_run <= ?))
                """,
                (schedule.id, schedule.version, to_storage(stale_before)),
            )
            claimed = cursor.rowcount == 1
            self.conn.commit()
        return claimed

    def write_run_result(self, schedule: Schedule) -> None:
        """Write status, last_run, next_run and failures in one statement."""
        with self._guard("write run result"):
            cursor = self.conn.execute(
                """
                UPDATE schedules
                SET status = ?, last_run = ?, next_run = ?, failures = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    schedule.status,
                    to_storage(schedule.last_run),
                    to_storage(schedule.next_run),
                    schedule.failures,
                    to_storage(utc_now()),
                    schedule.id,
                ),
            )
            updated = cursor.rowcount
            self.conn.commit()

        if updated == 0:
            logger.warning("schedule.write_back_missing_row", schedule_id=schedule.id)

    def initialize_next_run(self, schedule_id: str, next_run: datetime) -> bool:
        """Set the first ``next_run`` of a schedule that has none.

        Returns:
            True if the row was still uninitialised and is now set.
        """
        with self._guard("initialize next run"):
            cursor = self.conn.execute(
                "UPDATE schedules SET next_run = ? WHERE id = ? AND next_run IS NULL",
                (to_storage(next_run), schedule_id),
            )
            initialized = cursor.rowcount == 1
            self.conn.commit()
        return initialized

    # === Schedule Run Operations ===

    def record_run(self, spec: ScheduleRunCreate, keep_history: int = 300) -> ScheduleRun:
        """Insert a run record and trim the schedule's history.

        Only the *keep_history* newest runs of this schedule are kept;
        other schedules' history is untouched.
        """
        run = ScheduleRun(
            id=str(uuid4()),
            schedule_id=spec.schedule_id,
            status=spec.status,
            result=spec.result,
            summary=spec.summary,
            notification_level=spec.notification_level,
            error=spec.error,
            created_at=spec.created_at or utc_now(),
        )

        with self._guard("record run"):
            self.conn.execute(
                f"INSERT INTO schedule_runs ({', '.join(_RUN_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    run.id,
                    run.schedule_id,
                    run.status,
                    run.result,
                    run.summary,
                    run.notification_level,
                    run.error,
                    to_storage(run.created_at),
                ),
            )
            self.conn.execute(
                """
                DELETE FROM schedule_runs
                WHERE schedule_id = ? AND id NOT IN (
                    SELECT id FROM schedule_runs
                    WHERE schedule_id = ?
                    ORDER BY created_at DESC, id DESC
                    LIMIT ?
                )
                """,
                (run.schedule_id, run.schedule_id, max(keep_history, 1)),
            )
            self.conn.commit()
        return run

    def get_run(self, run_id: str) -> ScheduleRun | None:
        """Get schedule run by ID."""
        with self._guard("get run"):
            cursor = self.conn.execute(f"{_SELECT_RUNS} WHERE id = ?", (run_id,))
            row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_schedule_run(row)

    def list_runs(self, schedule_id: str, limit: int = 50) -> list[ScheduleRun]:
        """List a schedule's runs, newest first."""
        with self._guard("list runs"):
            cursor = self.conn.execute(
                f"{_SELECT_RUNS} WHERE schedule_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (schedule_id, limit),
            )
            rows = cursor.fetchall()
        return [self._row_to_schedule_run(row) for row in rows]

    # === Private Helpers ===

    @staticmethod
    def _schedule_params(schedule: Schedule) -> tuple[Any, ...]:
        return (
            schedule.id,
            schedule.project_id,
            schedule.connection_id,
            schedule.user_id,
            schedule.playbook,
            schedule.schedule_type,
            schedule.cron_expression,
            schedule.min_interval_seconds,
            schedule.max_interval_seconds,
            schedule.additional_instructions,
            schedule.model,
            1 if schedule.enabled else 0,
            schedule.status,
            to_storage(schedule.last_run),
            to_storage(schedule.next_run),
            schedule.failures,
            schedule.keep_history,
            to_storage(schedule.created_at),
            to_storage(schedule.updated_at),
            schedule.version,
        )

    def _row_to_schedule(self, row: tuple) -> Schedule:
        """Convert database row to Schedule model."""
        data = dict(zip(_SCHEDULE_COLUMNS, row, strict=True))
        data["enabled"] = bool(data["enabled"])
        for key in ("last_run", "next_run", "created_at", "updated_at"):
            data[key] = from_storage(data[key])
        return Schedule(**data)

    def _row_to_schedule_run(self, row: tuple) -> ScheduleRun:
        """Convert database row to ScheduleRun model."""
        data = dict(zip(_RUN_COLUMNS, row, strict=True))
        data["created_at"] = from_storage(data["created_at"])
        return ScheduleRun(**data)

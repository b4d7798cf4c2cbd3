"""Schedule table models (01_schedules.sql).

A :class:`Schedule` is a persisted, recurring instruction to run one
playbook against one database connection.  A :class:`ScheduleRun` is one
row of its execution history.

Status lifecycle (driven only by the scheduler loop)::

    scheduled ──claim──► running ──reconcile──► scheduled
                            │
                            └── crash-recovery: reclaimable once
                                next_run + recovery timeout has passed
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ScheduleStatus(str, Enum):
    """Scheduler state of a schedule row."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    # Legacy rows may still carry this value; it is never eligible.
    DISABLED = "disabled"


class ScheduleType(str, Enum):
    """How the next run is derived."""

    CRON = "cron"
    AUTOMATIC = "automatic"


class ScheduleRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationLevel(str, Enum):
    """Severity an executor assigns to a playbook result."""

    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


# ---------------------------------------------------------------------------
# schedules
# ---------------------------------------------------------------------------


@dataclass
class Schedule:
    """Schedule definition row (``schedules``)."""

    id: str = ""
    project_id: str = ""
    connection_id: str = ""
    user_id: str = ""
    playbook: str = ""
    schedule_type: str = ScheduleType.CRON.value
    cron_expression: str | None = None
    min_interval_seconds: int | None = None
    max_interval_seconds: int | None = None
    additional_instructions: str | None = None
    model: str = "openai-gpt-4o"
    enabled: bool = True
    status: str = ScheduleStatus.SCHEDULED.value
    last_run: datetime | None = None
    next_run: datetime | None = None
    failures: int = 0
    keep_history: int = 300
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1


# ---------------------------------------------------------------------------
# schedule_runs
# ---------------------------------------------------------------------------


@dataclass
class ScheduleRun:
    """Playbook execution history row (``schedule_runs``)."""

    id: str = ""
    schedule_id: str = ""
    status: str = ScheduleRunStatus.COMPLETED.value
    result: str | None = None
    summary: str | None = None
    notification_level: str | None = None
    error: str | None = None
    created_at: datetime | None = None

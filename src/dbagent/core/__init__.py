"""Core primitives for the dbagent playbook scheduler.

The scheduler lives in :mod:`dbagent.core.scheduling`.  Everything else in
this package is shared infrastructure: typed errors, structured logging,
settings, and the database connection layer used by the schedule store.
"""

from dbagent.core.errors import (
    ConfigError,
    DbAgentError,
    ErrorCategory,
    InvalidCronExpressionError,
    PlaybookExecutionError,
    ScheduleConfigError,
    ScheduleNotFoundError,
    ScheduleRunNotFoundError,
    StoreError,
)
from dbagent.core.models.schedule import (
    NotificationLevel,
    Schedule,
    ScheduleRun,
    ScheduleRunStatus,
    ScheduleStatus,
    ScheduleType,
)

__all__ = [
    "ConfigError",
    "DbAgentError",
    "ErrorCategory",
    "InvalidCronExpressionError",
    "NotificationLevel",
    "PlaybookExecutionError",
    "Schedule",
    "ScheduleConfigError",
    "ScheduleNotFoundError",
    "ScheduleRun",
    "ScheduleRunNotFoundError",
    "ScheduleRunStatus",
    "ScheduleStatus",
    "ScheduleType",
    "StoreError",
]

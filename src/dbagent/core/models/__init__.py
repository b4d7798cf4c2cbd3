"""Dataclass models for the dbagent schema tables.

Field names match SQL column names so rows convert directly into models.

schedule
    Tables from ``01_schedules.sql`` -- schedules and schedule run history.
"""

from dbagent.core.models.schedule import (
    NotificationLevel,
    Schedule,
    ScheduleRun,
    ScheduleRunStatus,
    ScheduleStatus,
    ScheduleType,
)

__all__ = [
    "NotificationLevel",
    "Schedule",
    "ScheduleRun",
    "ScheduleRunStatus",
    "ScheduleStatus",
    "ScheduleType",
]

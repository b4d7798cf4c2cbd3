"""Which schedules a tick may try to claim.

A schedule is eligible when it is enabled, has a ``next_run``, and either:

- is ``scheduled`` and ``now >= next_run``, or
- is ``running`` and ``now >= next_run + recovery_timeout`` (the worker
  that claimed it is presumed dead).

Both comparisons are inclusive, so a stuck schedule becomes reclaimable
at exactly ``next_run + recovery_timeout``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from dbagent.core.models.schedule import Schedule, ScheduleStatus
from dbagent.core.timestamps import ensure_utc


def is_eligible(schedule: Schedule, now: datetime, recovery_timeout: timedelta) -> bool:
    """Return whether *schedule* may be claimed at *now*."""
    if not schedule.enabled or schedule.next_run is None:
        return False

    now = ensure_utc(now)
    next_run = ensure_utc(schedule.next_run)

    if schedule.status == ScheduleStatus.SCHEDULED.value:
        return now >= next_run
    if schedule.status == ScheduleStatus.RUNNING.value:
        return now >= next_run + recovery_timeout
    return False


def filter_eligible(
    schedules: Iterable[Schedule],
    now: datetime,
    recovery_timeout: timedelta,
) -> list[Schedule]:
    """Keep the eligible schedules, preserving input order."""
    return [s for s in schedules if is_eligible(s, now, recovery_timeout)]

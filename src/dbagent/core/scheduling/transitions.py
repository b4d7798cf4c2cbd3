"""State transitions applied around one playbook run.

``reconcile_schedule`` is a pure function of the claimed snapshot, the
tick time and the outcome.  Applying it twice to the same snapshot gives
the same row, so a repeated write-back is harmless.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from dbagent.core.errors import ScheduleConfigError
from dbagent.core.logging import get_logger
from dbagent.core.models.schedule import Schedule, ScheduleStatus
from dbagent.core.scheduling.next_run import compute_next_run
from dbagent.core.timestamps import ensure_utc

logger = get_logger(__name__)


def claim_cutoff(now: datetime, recovery_timeout: timedelta) -> datetime:
    """Latest ``next_run`` a ``running`` row may have and still be reclaimed."""
    return ensure_utc(now) - recovery_timeout


def reconcile_schedule(snapshot: Schedule, now: datetime, succeeded: bool) -> Schedule:
    """Return the row to write back after a run of *snapshot*.

    The result is ``scheduled`` with ``last_run = now`` and a fresh
    ``next_run``.  A failed run increments ``failures``; a successful run
    leaves it unchanged.  If the cadence can no longer be evaluated,
    ``next_run`` becomes ``None`` and the schedule stays inert until its
    configuration is fixed.
    """
    now = ensure_utc(now)
    try:
        next_run: datetime | None = compute_next_run(snapshot, now)
    except ScheduleConfigError as exc:
        logger.error(
            "schedule.next_run_failed",
            schedule_id=snapshot.id,
            error=exc.message,
        )
        next_run = None

    return replace(
        snapshot,
        status=ScheduleStatus.SCHEDULED.value,
        last_run=now,
        next_run=next_run,
        failures=snapshot.failures if succeeded else snapshot.failures + 1,
    )

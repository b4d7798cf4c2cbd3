"""Next-run computation for playbook schedules.

Cron expressions are evaluated with croniter in UTC.  An expression that
cannot be parsed raises :class:`InvalidCronExpressionError` instead of
guessing a time; the caller decides what that means (rejecting a form at
creation, or leaving a schedule inert during a tick).

    schedule_type   next run
    ─────────────   ──────────────────────────────────────────────
    cron            first cron occurrence strictly after ``now``
    automatic       ``now + min_interval_seconds``
    anything else   ``now`` (due again immediately)

Examples:
    >>> from datetime import UTC, datetime
    >>> s = Schedule(schedule_type="cron", cron_expression="0 * * * *")
    >>> compute_next_run(s, datetime(2024, 1, 1, 0, 5, tzinfo=UTC)).isoformat()
    '2024-01-01T01:00:00+00:00'
"""

from __future__ import annotations

from datetime import datetime, timedelta

from croniter import CroniterError, croniter

from dbagent.core.errors import InvalidCronExpressionError, ScheduleConfigError
from dbagent.core.models.schedule import Schedule, ScheduleType
from dbagent.core.timestamps import ensure_utc


def _next_cron_occurrence(expression: str, now: datetime, schedule_id: str | None = None) -> datetime:
    try:
        itr = croniter(expression, now)
        next_run = itr.get_next(datetime)
    except (CroniterError, ValueError, KeyError) as exc:
        raise InvalidCronExpressionError(expression, schedule_id=schedule_id, cause=exc) from exc
    return ensure_utc(next_run)


def compute_next_run(schedule: Schedule, now: datetime) -> datetime:
    """Return when *schedule* should next run, given the current time.

    Args:
        schedule: Schedule whose cadence is evaluated.
        now: Current time; naive values are taken as UTC.

    Returns:
        An aware UTC datetime.

    Raises:
        InvalidCronExpressionError: If a cron schedule's expression cannot
            be parsed.
    """
    now = ensure_utc(now)

    if schedule.schedule_type == ScheduleType.CRON.value and schedule.cron_expression:
        return _next_cron_occurrence(schedule.cron_expression, now, schedule.id or None)

    if schedule.schedule_type == ScheduleType.AUTOMATIC.value and schedule.min_interval_seconds:
        return now + timedelta(seconds=schedule.min_interval_seconds)

    return now


def validate_schedule_config(
    schedule_type: str,
    cron_expression: str | None,
    min_interval_seconds: int | None,
) -> None:
    """Reject a cadence that could never produce a sensible next run.

    Raises:
        InvalidCronExpressionError: Cron type with an unparsable expression.
        ScheduleConfigError: Unknown type, missing cron expression, or a
            missing or non-positive automatic interval.
    """
    if schedule_type == ScheduleType.CRON.value:
        if not cron_expression:
            raise ScheduleConfigError("cron schedules require a cron_expression")
        if not croniter.is_valid(cron_expression):
            raise InvalidCronExpressionError(cron_expression)
        return

    if schedule_type == ScheduleType.AUTOMATIC.value:
        if min_interval_seconds is None or min_interval_seconds <= 0:
            raise ScheduleConfigError("automatic schedules require a positive min_interval_seconds")
        return

    raise ScheduleConfigError(
        f"Unknown schedule_type: {schedule_type!r}",
        context={"schedule_type": schedule_type},
    )

"""Tests for next-run computation and cadence validation."""

from datetime import UTC, datetime, timedelta

import pytest

from dbagent.core.errors import InvalidCronExpressionError, ScheduleConfigError
from dbagent.core.models.schedule import Schedule
from dbagent.core.scheduling import compute_next_run, validate_schedule_config

NOW = datetime(2024, 1, 1, 0, 5, tzinfo=UTC)


class TestCronNextRun:
    """Cron schedules run at the next occurrence after now."""

    def test_hourly(self):
        schedule = Schedule(schedule_type="cron", cron_expression="0 * * * *")
        assert compute_next_run(schedule, NOW) == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)

    def test_every_fifteen_minutes(self):
        schedule = Schedule(schedule_type="cron", cron_expression="*/15 * * * *")
        assert compute_next_run(schedule, NOW) == datetime(2024, 1, 1, 0, 15, tzinfo=UTC)

    def test_strictly_after_now(self):
        """A time that matches the expression exactly yields the following one."""
        schedule = Schedule(schedule_type="cron", cron_expression="0 * * * *")
        on_boundary = datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        assert compute_next_run(schedule, on_boundary) == datetime(2024, 1, 1, 2, 0, tzinfo=UTC)

    def test_daily_crosses_midnight(self):
        schedule = Schedule(schedule_type="cron", cron_expression="30 2 * * *")
        late = datetime(2024, 1, 1, 23, 0, tzinfo=UTC)
        assert compute_next_run(schedule, late) == datetime(2024, 1, 2, 2, 30, tzinfo=UTC)

    def test_result_is_utc_aware(self):
        schedule = Schedule(schedule_type="cron", cron_expression="0 * * * *")
        result = compute_next_run(schedule, NOW)
        assert result.tzinfo is not None
        assert result.utcoffset() == timedelta(0)

    def test_naive_now_is_utc(self):
        schedule = Schedule(schedule_type="cron", cron_expression="0 * * * *")
        naive = datetime(2024, 1, 1, 0, 5)
        assert compute_next_run(schedule, naive) == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)

    @pytest.mark.parametrize("expression", ["not a cron", "61 * * * *", "* * *"])
    def test_invalid_expression_raises(self, expression):
        schedule = Schedule(id="s-1", schedule_type="cron", cron_expression=expression)
        with pytest.raises(InvalidCronExpressionError) as exc_info:
            compute_next_run(schedule, NOW)

        assert exc_info.value.expression == expression
        assert exc_info.value.context["schedule_id"] == "s-1"

    def test_invalid_expression_is_a_config_error(self):
        schedule = Schedule(schedule_type="cron", cron_expression="not a cron")
        with pytest.raises(ScheduleConfigError):
            compute_next_run(schedule, NOW)


class TestAutomaticNextRun:
    """Automatic schedules run min_interval_seconds after now."""

    def test_adds_min_interval(self):
        schedule = Schedule(schedule_type="automatic", min_interval_seconds=300)
        assert compute_next_run(schedule, NOW) == NOW + timedelta(seconds=300)

    def test_max_interval_is_ignored(self):
        schedule = Schedule(schedule_type="automatic", min_interval_seconds=60, max_interval_seconds=3600)
        assert compute_next_run(schedule, NOW) == NOW + timedelta(seconds=60)


class TestFallbackNextRun:
    """Anything else is due again immediately."""

    def test_cron_without_expression(self):
        schedule = Schedule(schedule_type="cron", cron_expression=None)
        assert compute_next_run(schedule, NOW) == NOW

    def test_automatic_without_interval(self):
        schedule = Schedule(schedule_type="automatic", min_interval_seconds=None)
        assert compute_next_run(schedule, NOW) == NOW

    def test_unknown_type(self):
        schedule = Schedule(schedule_type="hourly", cron_expression="0 * * * *")
        assert compute_next_run(schedule, NOW) == NOW


class TestValidateScheduleConfig:
    def test_valid_cron(self):
        validate_schedule_config("cron", "0 * * * *", None)

    def test_valid_automatic(self):
        validate_schedule_config("automatic", None, 600)

    def test_cron_requires_expression(self):
        with pytest.raises(ScheduleConfigError, match="cron_expression"):
            validate_schedule_config("cron", None, None)

    def test_cron_rejects_invalid_expression(self):
        with pytest.raises(InvalidCronExpressionError):
            validate_schedule_config("cron", "every hour", None)

    @pytest.mark.parametrize("interval", [None, 0, -5])
    def test_automatic_requires_positive_interval(self, interval):
        with pytest.raises(ScheduleConfigError, match="min_interval_seconds"):
            validate_schedule_config("automatic", None, interval)

    def test_unknown_type(self):
        with pytest.raises(ScheduleConfigError) as exc_info:
            validate_schedule_config("weekly", None, None)

        assert exc_info.value.context["schedule_type"] == "weekly"

"""Tests for the eligibility filter."""

from datetime import UTC, datetime, timedelta

import pytest

from dbagent.core.models.schedule import Schedule
from dbagent.core.scheduling import filter_eligible, is_eligible

NOW = datetime(2024, 1, 1, 0, 5, tzinfo=UTC)
RECOVERY = timedelta(minutes=15)


def _schedule(**kwargs) -> Schedule:
    fields = {"id": "s-1", "cron_expression": "0 * * * *", "next_run": NOW}
    fields.update(kwargs)
    return Schedule(**fields)


class TestScheduledSchedules:
    def test_due_exactly_now(self):
        assert is_eligible(_schedule(next_run=NOW), NOW, RECOVERY) is True

    def test_overdue(self):
        assert is_eligible(_schedule(next_run=NOW - timedelta(hours=3)), NOW, RECOVERY) is True

    def test_not_yet_due(self):
        assert is_eligible(_schedule(next_run=NOW + timedelta(seconds=1)), NOW, RECOVERY) is False


class TestRunningSchedules:
    """A running schedule is only reclaimable after the recovery timeout."""

    def test_recently_claimed_is_not_eligible(self):
        schedule = _schedule(status="running", next_run=NOW - timedelta(minutes=10))
        assert is_eligible(schedule, NOW, RECOVERY) is False

    def test_reclaimable_at_exact_timeout(self):
        schedule = _schedule(status="running", next_run=NOW - RECOVERY)
        assert is_eligible(schedule, NOW, RECOVERY) is True

    def test_stuck_past_timeout(self):
        schedule = _schedule(status="running", next_run=NOW - timedelta(hours=1))
        assert is_eligible(schedule, NOW, RECOVERY) is True


class TestNeverEligible:
    def test_disabled(self):
        assert is_eligible(_schedule(enabled=False), NOW, RECOVERY) is False

    def test_disabled_running(self):
        schedule = _schedule(enabled=False, status="running", next_run=NOW - timedelta(days=1))
        assert is_eligible(schedule, NOW, RECOVERY) is False

    @pytest.mark.parametrize("status", ["scheduled", "running"])
    def test_no_next_run(self, status):
        assert is_eligible(_schedule(status=status, next_run=None), NOW, RECOVERY) is False

    def test_legacy_disabled_status(self):
        assert is_eligible(_schedule(status="disabled"), NOW, RECOVERY) is False


def test_naive_timestamps_are_utc():
    schedule = _schedule(next_run=datetime(2024, 1, 1, 0, 0))
    assert is_eligible(schedule, datetime(2024, 1, 1, 0, 5), RECOVERY) is True


def test_filter_preserves_order():
    due_a = _schedule(id="a")
    future = _schedule(id="b", next_run=NOW + timedelta(hours=1))
    due_c = _schedule(id="c", next_run=NOW - timedelta(minutes=1))
    stuck = _schedule(id="d", status="running", next_run=NOW - timedelta(hours=1))

    eligible = filter_eligible([due_a, future, due_c, stuck], NOW, RECOVERY)

    assert [s.id for s in eligible] == ["a", "c", "d"]


def test_filter_empty():
    assert filter_eligible([], NOW, RECOVERY) == []

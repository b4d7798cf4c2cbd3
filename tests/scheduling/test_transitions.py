"""Tests for claim cutoff and reconcile."""

from datetime import UTC, datetime, timedelta

from dbagent.core.models.schedule import Schedule
from dbagent.core.scheduling import claim_cutoff, reconcile_schedule

NOW = datetime(2024, 1, 1, 0, 5, tzinfo=UTC)


def _snapshot(**kwargs) -> Schedule:
    fields = {
        "id": "s-1",
        "playbook": "tableBloat",
        "cron_expression": "0 * * * *",
        "status": "scheduled",
        "next_run": datetime(2024, 1, 1, 0, 0, tzinfo=UTC),
        "failures": 2,
        "version": 4,
    }
    fields.update(kwargs)
    return Schedule(**fields)


def test_claim_cutoff():
    assert claim_cutoff(NOW, timedelta(minutes=15)) == datetime(2023, 12, 31, 23, 50, tzinfo=UTC)


class TestReconcileSchedule:
    def test_success_keeps_failures(self):
        result = reconcile_schedule(_snapshot(), NOW, succeeded=True)

        assert result.status == "scheduled"
        assert result.last_run == NOW
        assert result.next_run == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        assert result.failures == 2

    def test_failure_increments_failures(self):
        result = reconcile_schedule(_snapshot(), NOW, succeeded=False)

        assert result.failures == 3
        assert result.status == "scheduled"
        assert result.next_run == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)

    def test_running_snapshot_returns_to_scheduled(self):
        result = reconcile_schedule(_snapshot(status="running"), NOW, succeeded=True)
        assert result.status == "scheduled"

    def test_automatic_schedule(self):
        snapshot = _snapshot(schedule_type="automatic", cron_expression=None, min_interval_seconds=600)
        result = reconcile_schedule(snapshot, NOW, succeeded=True)
        assert result.next_run == NOW + timedelta(seconds=600)

    def test_invalid_cron_leaves_schedule_inert(self):
        result = reconcile_schedule(_snapshot(cron_expression="bogus"), NOW, succeeded=True)

        assert result.next_run is None
        assert result.status == "scheduled"
        assert result.last_run == NOW

    def test_snapshot_is_not_modified(self):
        snapshot = _snapshot()
        reconcile_schedule(snapshot, NOW, succeeded=False)

        assert snapshot.failures == 2
        assert snapshot.last_run is None

    def test_idempotent(self):
        snapshot = _snapshot()
        assert reconcile_schedule(snapshot, NOW, False) == reconcile_schedule(snapshot, NOW, False)

    def test_other_fields_untouched(self):
        result = reconcile_schedule(_snapshot(), NOW, succeeded=True)
        assert result.id == "s-1"
        assert result.playbook == "tableBloat"
        assert result.version == 4

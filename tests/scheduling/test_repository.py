"""Tests for ScheduleRepository."""

import threading
from datetime import UTC, datetime, timedelta

import pytest

from dbagent.core.errors import InvalidCronExpressionError, ScheduleConfigError, StoreError
from dbagent.core.scheduling import (
    ScheduleCreate,
    ScheduleRepository,
    ScheduleRunCreate,
    ScheduleUpdate,
    reconcile_schedule,
)
from dbagent.core.schema_loader import apply_all_schemas
from dbagent.core.sqlite_conn import SqliteConnection

NOW = datetime(2024, 1, 1, 0, 5, tzinfo=UTC)


class TestScheduleCRUD:
    """Test basic CRUD operations."""

    def test_create_cron_schedule(self, repository):
        schedule = repository.create(
            ScheduleCreate(
                project_id="p-1",
                connection_id="c-1",
                user_id="u-1",
                playbook="tableBloat",
                cron_expression="0 * * * *",
                additional_instructions="Focus on the orders table",
            ),
            now=NOW,
        )

        assert schedule.id
        assert schedule.status == "scheduled"
        assert schedule.enabled is True
        assert schedule.next_run == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        assert schedule.failures == 0
        assert schedule.version == 1

        fetched = repository.get(schedule.id)
        assert fetched == schedule

    def test_create_automatic_schedule(self, repository):
        schedule = repository.create(
            ScheduleCreate(
                project_id="p-1",
                connection_id="c-1",
                user_id="u-1",
                playbook="vacuumCheck",
                schedule_type="automatic",
                min_interval_seconds=900,
                max_interval_seconds=3600,
            ),
            now=NOW,
        )
        assert schedule.next_run == NOW + timedelta(seconds=900)

    def test_create_disabled_has_no_next_run(self, repository):
        schedule = repository.create(
            ScheduleCreate(
                project_id="p-1",
                connection_id="c-1",
                user_id="u-1",
                playbook="tableBloat",
                cron_expression="0 * * * *",
                enabled=False,
            ),
            now=NOW,
        )
        assert schedule.next_run is None
        assert repository.get(schedule.id).enabled is False

    def test_create_rejects_invalid_cron(self, repository):
        with pytest.raises(InvalidCronExpressionError):
            repository.create(
                ScheduleCreate(
                    project_id="p-1",
                    connection_id="c-1",
                    user_id="u-1",
                    playbook="tableBloat",
                    cron_expression="whenever",
                )
            )
        assert repository.list_all() == []

    def test_create_rejects_automatic_without_interval(self, repository):
        with pytest.raises(ScheduleConfigError):
            repository.create(
                ScheduleCreate(
                    project_id="p-1",
                    connection_id="c-1",
                    user_id="u-1",
                    playbook="tableBloat",
                    schedule_type="automatic",
                )
            )

    def test_get_nonexistent(self, repository):
        assert repository.get("missing") is None

    def test_list_all_includes_disabled(self, repository, make_schedule):
        make_schedule("a")
        make_schedule("b", enabled=False)

        assert sorted(s.playbook for s in repository.list_all()) == ["a", "b"]

    def test_list_all_in_creation_order(self, repository, make_schedule):
        first = make_schedule("a", created_ago=timedelta(minutes=30))
        second = make_schedule("b", created_ago=timedelta(minutes=20), enabled=False)
        third = make_schedule("c", created_ago=timedelta(minutes=10))

        assert [s.id for s in repository.list_all()] == [first.id, second.id, third.id]

    def test_list_by_project(self, repository, make_schedule):
        mine = make_schedule("a", project_id="p-1")
        make_schedule("b", project_id="p-2")

        assert [s.id for s in repository.list_by_project("p-1")] == [mine.id]
        assert repository.list_by_project("p-3") == []

    def test_count_enabled(self, repository, make_schedule):
        make_schedule("a")
        make_schedule("b")
        make_schedule("c", enabled=False)

        assert repository.count_enabled() == 2

    def test_update_cadence_recomputes_next_run(self, repository, make_schedule):
        schedule = make_schedule()

        updated = repository.update(schedule.id, ScheduleUpdate(cron_expression="*/15 * * * *"), now=NOW)

        assert updated.cron_expression == "*/15 * * * *"
        assert updated.next_run == datetime(2024, 1, 1, 0, 15, tzinfo=UTC)

    def test_update_without_cadence_keeps_next_run(self, repository, make_schedule):
        schedule = make_schedule()

        updated = repository.update(schedule.id, ScheduleUpdate(model="anthropic-claude", keep_history=10))

        assert updated.model == "anthropic-claude"
        assert updated.keep_history == 10
        assert updated.next_run == schedule.next_run

    def test_update_switch_to_automatic(self, repository, make_schedule):
        schedule = make_schedule()

        updated = repository.update(
            schedule.id,
            ScheduleUpdate(schedule_type="automatic", min_interval_seconds=120),
            now=NOW,
        )

        assert updated.schedule_type == "automatic"
        assert updated.next_run == NOW + timedelta(seconds=120)

    def test_update_invalid_cadence_leaves_row(self, repository, make_schedule):
        schedule = make_schedule()

        with pytest.raises(InvalidCronExpressionError):
            repository.update(schedule.id, ScheduleUpdate(cron_expression="nope"))

        assert repository.get(schedule.id).cron_expression == "0 * * * *"

    def test_update_nonexistent(self, repository):
        assert repository.update("missing", ScheduleUpdate(model="x")) is None

    def test_delete_removes_history(self, repository, make_schedule):
        schedule = make_schedule()
        repository.record_run(ScheduleRunCreate(schedule_id=schedule.id))

        assert repository.delete(schedule.id) is True
        assert repository.get(schedule.id) is None
        assert repository.list_runs(schedule.id) == []

    def test_delete_nonexistent(self, repository):
        assert repository.delete("missing") is False


class TestSetEnabled:
    def test_disable_clears_next_run(self, repository, make_schedule):
        schedule = make_schedule()

        disabled = repository.set_enabled(schedule.id, False, NOW)

        assert disabled.enabled is False
        assert disabled.next_run is None
        assert disabled.status == "scheduled"

    def test_enable_computes_from_now(self, repository, make_schedule):
        schedule = make_schedule(enabled=False)
        later = NOW + timedelta(hours=5)

        enabled = repository.set_enabled(schedule.id, True, later)

        assert enabled.enabled is True
        assert enabled.next_run == datetime(2024, 1, 1, 6, 0, tzinfo=UTC)

    def test_running_status_survives_disable(self, repository, make_schedule):
        schedule = make_schedule()
        assert repository.claim_running(schedule, NOW - timedelta(minutes=15))

        disabled = repository.set_enabled(schedule.id, False, NOW)

        assert disabled.status == "running"
        assert disabled.enabled is False

    def test_nonexistent(self, repository):
        assert repository.set_enabled("missing", True) is None


class TestClaimRunning:
    """The compare-and-set claim."""

    def test_claim_scheduled(self, repository, make_schedule):
        schedule = make_schedule()

        assert repository.claim_running(schedule, NOW - timedelta(minutes=15)) is True

        claimed = repository.get(schedule.id)
        assert claimed.status == "running"
        assert claimed.version == schedule.version + 1

    def test_same_snapshot_claims_once(self, repository, make_schedule):
        """Two workers holding the same snapshot: exactly one wins."""
        schedule = make_schedule()
        cutoff = NOW - timedelta(minutes=15)

        results = [repository.claim_running(schedule, cutoff) for _ in range(5)]

        assert results.count(True) == 1
        assert results[0] is True

    def test_fresh_running_row_not_reclaimable(self, repository, make_schedule):
        schedule = make_schedule()
        repository.claim_running(schedule, NOW - timedelta(minutes=15))
        running = repository.get(schedule.id)

        assert repository.claim_running(running, NOW - timedelta(minutes=15)) is False

    def test_stale_running_row_reclaimable(self, repository, make_schedule):
        schedule = make_schedule()
        repository.claim_running(schedule, NOW - timedelta(minutes=15))
        running = repository.get(schedule.id)

        later = NOW + timedelta(minutes=20)
        assert repository.claim_running(running, later - timedelta(minutes=15)) is True
        assert repository.get(schedule.id).version == schedule.version + 2

    def test_disabled_not_claimable(self, repository, make_schedule):
        schedule = make_schedule()
        repository.set_enabled(schedule.id, False, NOW)
        current = repository.get(schedule.id)

        assert repository.claim_running(current, NOW) is False

    def test_deleted_not_claimable(self, repository, make_schedule):
        schedule = make_schedule()
        repository.delete(schedule.id)

        assert repository.claim_running(schedule, NOW) is False


class TestClaimAcrossConnections:
    """Workers with their own connection to one shared SQLite file."""

    @pytest.mark.parametrize("attempt", range(5))
    def test_concurrent_claims_from_two_connections(self, tmp_path, attempt):
        path = str(tmp_path / "shared.db")
        setup = SqliteConnection(path)
        apply_all_schemas(setup)
        schedule = ScheduleRepository(setup).create(
            ScheduleCreate(
                project_id="p-1",
                connection_id="c-1",
                user_id="u-1",
                playbook="tableBloat",
                cron_expression="0 * * * *",
            ),
            now=NOW - timedelta(minutes=10),
        )
        setup.close()

        conns = [SqliteConnection(path), SqliteConnection(path)]
        workers = [ScheduleRepository(conn) for conn in conns]
        snapshots = [worker.get(schedule.id) for worker in workers]
        cutoff = NOW - timedelta(minutes=15)
        barrier = threading.Barrier(2)
        results: list[bool] = [False, False]

        def claim(index: int) -> None:
            barrier.wait(timeout=5.0)
            results[index] = workers[index].claim_running(snapshots[index], cutoff)

        threads = [threading.Thread(target=claim, args=(i,)) for i in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10.0)

        try:
            assert sorted(results) == [False, True]
            claimed = workers[0].get(schedule.id)
            assert claimed.status == "running"
            assert claimed.version == schedule.version + 1
        finally:
            for conn in conns:
                conn.close()


class TestWriteRunResult:
    def test_write_back(self, repository, make_schedule):
        schedule = make_schedule()
        repository.claim_running(schedule, NOW - timedelta(minutes=15))

        repository.write_run_result(reconcile_schedule(schedule, NOW, succeeded=False))

        stored = repository.get(schedule.id)
        assert stored.status == "scheduled"
        assert stored.last_run == NOW
        assert stored.next_run == datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        assert stored.failures == 1
        assert stored.version == schedule.version + 1

    def test_missing_row_is_not_an_error(self, repository, make_schedule):
        schedule = make_schedule()
        repository.delete(schedule.id)

        repository.write_run_result(reconcile_schedule(schedule, NOW, succeeded=True))
        assert repository.get(schedule.id) is None


class TestInitializeNextRun:
    def test_sets_only_when_null(self, repository, db_conn, make_schedule):
        schedule = make_schedule(enabled=False)
        db_conn.execute("UPDATE schedules SET enabled = 1 WHERE id = ?", (schedule.id,))
        db_conn.commit()

        first = datetime(2024, 1, 1, 1, 0, tzinfo=UTC)
        assert repository.initialize_next_run(schedule.id, first) is True
        assert repository.initialize_next_run(schedule.id, first + timedelta(hours=1)) is False
        assert repository.get(schedule.id).next_run == first


class TestRunHistory:
    def test_record_and_get(self, repository, make_schedule):
        schedule = make_schedule()

        run = repository.record_run(
            ScheduleRunCreate(
                schedule_id=schedule.id,
                status="completed",
                result="full report",
                summary="No issues found",
                notification_level="info",
                created_at=NOW,
            )
        )

        fetched = repository.get_run(run.id)
        assert fetched == run
        assert fetched.created_at == NOW

    def test_get_run_nonexistent(self, repository):
        assert repository.get_run("missing") is None

    def test_list_runs_newest_first(self, repository, make_schedule):
        schedule = make_schedule()
        for minutes in (1, 3, 2):
            repository.record_run(
                ScheduleRunCreate(schedule_id=schedule.id, created_at=NOW + timedelta(minutes=minutes))
            )

        runs = repository.list_runs(schedule.id)
        assert [r.created_at.minute for r in runs] == [8, 7, 6]

    def test_list_runs_limit(self, repository, make_schedule):
        schedule = make_schedule()
        for minutes in range(5):
            repository.record_run(
                ScheduleRunCreate(schedule_id=schedule.id, created_at=NOW + timedelta(minutes=minutes))
            )

        assert len(repository.list_runs(schedule.id, limit=3)) == 3

    def test_history_trimmed_per_schedule(self, repository, make_schedule):
        trimmed = make_schedule("a")
        other = make_schedule("b")
        repository.record_run(ScheduleRunCreate(schedule_id=other.id, created_at=NOW))

        for minutes in range(4):
            repository.record_run(
                ScheduleRunCreate(schedule_id=trimmed.id, created_at=NOW + timedelta(minutes=minutes)),
                keep_history=2,
            )

        kept = repository.list_runs(trimmed.id)
        assert [r.created_at for r in kept] == [NOW + timedelta(minutes=3), NOW + timedelta(minutes=2)]
        assert len(repository.list_runs(other.id)) == 1


class TestStoreErrors:
    def test_closed_connection_raises_store_error(self, repository, db_conn):
        db_conn.close()

        with pytest.raises(StoreError) as exc_info:
            repository.list_all()

        assert exc_info.value.retryable is True
        assert exc_info.value.context["operation"] == "list schedules"
        assert exc_info.value.cause is not None

    def test_missing_table_raises_store_error(self, repository, db_conn):
        db_conn.execute("DROP TABLE schedule_runs")
        db_conn.commit()

        with pytest.raises(StoreError):
            repository.list_runs("s-1")

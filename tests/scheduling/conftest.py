"""Pytest fixtures for scheduling tests."""

from __future__ import annotations

from datetime import timedelta

import pytest

from dbagent.core.schema_loader import apply_all_schemas
from dbagent.core.scheduling import (
    PlaybookOutcome,
    ScheduleCreate,
    ScheduleRepository,
    SchedulerService,
    ThreadSchedulerBackend,
)
from dbagent.core.sqlite_conn import SqliteConnection


class RecordingExecutor:
    """Executor double: records calls, returns a fixed outcome or raises."""

    def __init__(self, outcome: PlaybookOutcome | None = None, exc: Exception | None = None) -> None:
        self.outcome = outcome or PlaybookOutcome(
            succeeded=True,
            result="2 bloated tables",
            summary="Bloat under threshold",
            notification_level="info",
        )
        self.exc = exc
        self.calls: list[dict] = []

    async def run(
        self,
        playbook,
        connection_id,
        user_id,
        project_id,
        *,
        additional_instructions=None,
        model=None,
    ):
        self.calls.append(
            {
                "playbook": playbook,
                "connection_id": connection_id,
                "user_id": user_id,
                "project_id": project_id,
                "additional_instructions": additional_instructions,
                "model": model,
            }
        )
        if self.exc is not None:
            raise self.exc
        return self.outcome


@pytest.fixture
def db_conn():
    """In-memory SQLite database with the schedule schema applied."""
    conn = SqliteConnection(":memory:")
    apply_all_schemas(conn)
    yield conn
    conn.close()


@pytest.fixture
def repository(db_conn):
    """Create a ScheduleRepository with test database."""
    return ScheduleRepository(db_conn)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def backend():
    """Create a ThreadSchedulerBackend."""
    return ThreadSchedulerBackend(shutdown_timeout=5.0)


@pytest.fixture
def make_schedule(repository, fixed_now):
    """Factory: persist a schedule created at ``fixed_now - created_ago``.

    The default hourly cron created ten minutes before ``fixed_now`` has
    ``next_run`` at 00:00, so it is due at ``fixed_now`` (00:05).
    """

    def _make(
        playbook: str = "tableBloat",
        *,
        created_ago: timedelta = timedelta(minutes=10),
        **kwargs,
    ):
        fields = {
            "project_id": "p-1",
            "connection_id": "c-1",
            "user_id": "u-1",
            "playbook": playbook,
            "cron_expression": "0 * * * *",
        }
        fields.update(kwargs)
        if fields.get("schedule_type") == "automatic":
            fields.pop("cron_expression", None)
        return repository.create(ScheduleCreate(**fields), now=fixed_now - created_ago)

    return _make


@pytest.fixture
def scheduler_service(backend, repository, executor, fixed_now):
    """Create a SchedulerService with a fixed clock."""
    return SchedulerService(
        backend=backend,
        repository=repository,
        executor=executor,
        interval_seconds=60.0,
        max_parallel_runs=20,
        recovery_timeout=timedelta(minutes=15),
        clock=lambda: fixed_now,
        instance_id="test-instance",
    )

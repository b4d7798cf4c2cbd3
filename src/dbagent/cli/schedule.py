"""
CLI: ``dbagent schedule`` - schedule management commands.
"""

from __future__ import annotations

import asyncio

import typer

from dbagent.cli.utils import console, fail, load_settings, open_store, output_item, output_items
from dbagent.core.errors import DbAgentError, ScheduleNotFoundError
from dbagent.core.models.schedule import ScheduleType
from dbagent.core.scheduling import ScheduleCreate, ScheduleUpdate, create_scheduler

app = typer.Typer(no_args_is_help=True)

_LIST_COLUMNS = (
    "id",
    "project_id",
    "playbook",
    "schedule_type",
    "cron_expression",
    "min_interval_seconds",
    "enabled",
    "status",
    "next_run",
    "failures",
)


@app.command("list")
def list_schedules(
    project_id: str | None = typer.Option(None, "--project", help="Only schedules of this project"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List playbook schedules."""
    repo, conn = open_store(load_settings(database))
    try:
        schedules = repo.list_by_project(project_id) if project_id else repo.list_all()
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_items(schedules, as_json=json_out, title="Schedules", columns=_LIST_COLUMNS)


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule details."""
    repo, conn = open_store(load_settings(database))
    try:
        schedule = repo.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_item(schedule, as_json=json_out, title=f"Schedule: {schedule_id}")


@app.command("create")
def create_schedule(
    playbook: str = typer.Argument(..., help="Playbook to run"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    connection_id: str = typer.Option(..., "--connection", help="Target database connection ID"),
    user_id: str = typer.Option(..., "--user", help="Owner user ID"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression (cron schedules)"),
    interval: int | None = typer.Option(None, "--interval", help="Seconds between runs (automatic schedules)"),
    max_interval: int | None = typer.Option(None, "--max-interval", help="Upper bound for automatic schedules"),
    model: str = typer.Option("openai-gpt-4o", "--model", help="Model the playbook runs with"),
    instructions: str | None = typer.Option(None, "--instructions", help="Additional instructions"),
    keep_history: int | None = typer.Option(None, "--keep-history", help="Run records to keep"),
    enabled: bool = typer.Option(True, "--enabled/--disabled"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a new schedule.

    Pass ``--cron`` for a cron schedule or ``--interval`` for an automatic one.
    """
    settings = load_settings(database)
    schedule_type = ScheduleType.AUTOMATIC if interval is not None and not cron else ScheduleType.CRON
    repo, conn = open_store(settings)
    try:
        schedule = repo.create(
            ScheduleCreate(
                project_id=project_id,
                connection_id=connection_id,
                user_id=user_id,
                playbook=playbook,
                schedule_type=schedule_type.value,
                cron_expression=cron,
                min_interval_seconds=interval,
                max_interval_seconds=max_interval,
                additional_instructions=instructions,
                model=model,
                enabled=enabled,
                keep_history=keep_history or settings.default_keep_history,
            )
        )
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_item(schedule, as_json=json_out, title="Schedule Created")


@app.command("update")
def update_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    cron: str | None = typer.Option(None, "--cron"),
    interval: int | None = typer.Option(None, "--interval"),
    model: str | None = typer.Option(None, "--model"),
    instructions: str | None = typer.Option(None, "--instructions"),
    keep_history: int | None = typer.Option(None, "--keep-history"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update an existing schedule."""
    repo, conn = open_store(load_settings(database))
    try:
        schedule = repo.update(
            schedule_id,
            ScheduleUpdate(
                cron_expression=cron,
                min_interval_seconds=interval,
                model=model,
                additional_instructions=instructions,
                keep_history=keep_history,
            ),
        )
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_item(schedule, as_json=json_out, title="Schedule Updated")


def _toggle(schedule_id: str, enabled: bool, database: str | None, json_out: bool) -> None:
    repo, conn = open_store(load_settings(database))
    try:
        schedule = repo.set_enabled(schedule_id, enabled)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_item(schedule, as_json=json_out, title="Schedule Enabled" if enabled else "Schedule Disabled")


@app.command("enable")
def enable_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Enable a schedule (next run computed from now)."""
    _toggle(schedule_id, True, database, json_out)


@app.command("disable")
def disable_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Disable a schedule."""
    _toggle(schedule_id, False, database, json_out)


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a schedule and its run history."""
    repo, conn = open_store(load_settings(database))
    try:
        if not repo.delete(schedule_id):
            raise ScheduleNotFoundError(schedule_id)
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    console.print(f"[green]Deleted schedule[/green] {schedule_id}")


@app.command("runs")
def list_runs(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    limit: int = typer.Option(20, "--limit", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a schedule's most recent runs."""
    repo, conn = open_store(load_settings(database))
    try:
        runs = repo.list_runs(schedule_id, limit=limit)
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    output_items(
        runs,
        as_json=json_out,
        title=f"Runs: {schedule_id}",
        columns=("id", "status", "notification_level", "summary", "error", "created_at"),
    )


@app.command("trigger")
def trigger_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    executor: str | None = typer.Option(None, "--executor", help="Executor import path (module:attr)"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run one schedule now through the configured executor."""
    settings = load_settings(database, playbook_executor=executor)
    _repo, conn = open_store(settings)
    try:
        scheduler = create_scheduler(conn, settings=settings)
        disposition = asyncio.run(scheduler.trigger(schedule_id))
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()
    console.print(f"Schedule {schedule_id}: [bold]{disposition.value}[/bold]")

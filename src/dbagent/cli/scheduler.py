"""
CLI: ``dbagent scheduler`` - run the scheduler loop or a single tick.
"""

from __future__ import annotations

import asyncio
import signal
import sys
import threading

import typer

from dbagent.cli.utils import console, fail, load_settings, open_store, output_item
from dbagent.core.errors import DbAgentError
from dbagent.core.logging import configure_logging
from dbagent.core.scheduling import create_scheduler

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    database: str | None = typer.Option(None, "--database", "-d"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between ticks"),
    max_parallel: int | None = typer.Option(None, "--max-parallel", help="Max schedules per tick"),
    backend: str | None = typer.Option(None, "--backend", help="thread or apscheduler"),
    executor: str | None = typer.Option(None, "--executor", help="Executor import path (module:attr)"),
) -> None:
    """Run the scheduler loop until interrupted.

    Example::

        dbagent scheduler run --interval 60 --max-parallel 20
        DBAGENT_DATABASE_URL=postgresql://... dbagent scheduler run
    """
    try:
        settings = load_settings(
            database,
            scheduler_interval_seconds=interval,
            max_parallel_runs=max_parallel,
            scheduler_backend=backend,
            playbook_executor=executor,
        )
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            service="dbagent-scheduler",
            stream=sys.stderr,
        )
        _repo, conn = open_store(settings)
        scheduler = create_scheduler(conn, settings=settings)
    except DbAgentError as exc:
        fail(exc)

    stop = threading.Event()

    def _handle_signal(signum, frame) -> None:
        stop.set()

    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[bold green]Starting scheduler[/bold green] "
        f"(backend={scheduler.backend.name}, interval={scheduler.interval}s, "
        f"max_parallel={scheduler.max_parallel_runs})"
    )
    scheduler.start()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler interrupted[/yellow]")
    finally:
        scheduler.stop()
        conn.close()
    console.print("[green]Scheduler stopped[/green]")


@app.command("tick")
def tick(
    database: str | None = typer.Option(None, "--database", "-d"),
    max_parallel: int | None = typer.Option(None, "--max-parallel", help="Max schedules per tick"),
    executor: str | None = typer.Option(None, "--executor", help="Executor import path (module:attr)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a single scheduler pass and print its summary."""
    settings = load_settings(database, max_parallel_runs=max_parallel, playbook_executor=executor)
    _repo, conn = open_store(settings)
    try:
        scheduler = create_scheduler(conn, settings=settings)
        result = asyncio.run(scheduler.tick())
    except DbAgentError as exc:
        fail(exc)
    finally:
        conn.close()

    output_item(result.to_dict(), as_json=json_out, title="Scheduler Tick")
    if result.error:
        raise typer.Exit(code=1)

"""
Root Typer application for the dbagent CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from dbagent import __version__
from dbagent.core.logging import configure_logging

app = Typer(
    name="dbagent",
    help="dbagent - playbook scheduler for the PostgreSQL monitoring agent.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dbagent {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for CLI commands."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
) -> None:
    """dbagent CLI - run the scheduler and manage playbook schedules."""
    configure_logging(level=log_level, json_format=json_logs, service="dbagent-cli", stream=sys.stderr)


# ── Sub-command registration ─────────────────────────────────────────────

from dbagent.cli.db import app as db_app  # noqa: E402
from dbagent.cli.schedule import app as schedule_app  # noqa: E402
from dbagent.cli.scheduler import app as scheduler_app  # noqa: E402
from dbagent.cli.serve import serve  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(schedule_app, name="schedule", help="Schedule management.")
app.add_typer(scheduler_app, name="scheduler", help="Run the scheduler loop.")
app.command("serve", help="Start the API server.")(serve)

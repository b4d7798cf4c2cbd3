"""
CLI: ``dbagent db`` - database management commands.
"""

from __future__ import annotations

import typer

from dbagent.cli.utils import console, fail, load_settings, output_item
from dbagent.core.connection import create_connection
from dbagent.core.errors import DbAgentError
from dbagent.core.schema_loader import apply_all_schemas

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the schedule tables (idempotent)."""
    settings = load_settings(database)
    try:
        conn, info = create_connection(settings.database_url, data_dir=settings.data_dir)
        try:
            applied = apply_all_schemas(conn)
        finally:
            conn.close()
    except DbAgentError as exc:
        fail(exc)

    output_item(
        {"backend": info.backend, "database": info.resolved_path or info.url, "applied": applied},
        as_json=json_out,
        title="Database Init",
    )
    if not json_out:
        console.print("[green]Schema is up to date.[/green]")

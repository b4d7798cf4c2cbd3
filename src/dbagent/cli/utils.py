"""
CLI utility helpers: settings, store access and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from dbagent.core.connection import create_connection
from dbagent.core.errors import ConfigError, DbAgentError
from dbagent.core.scheduling import ScheduleRepository
from dbagent.core.settings import DbAgentSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Settings / connection helpers ────────────────────────────────────────


def load_settings(database: str | None = None, **overrides: Any) -> DbAgentSettings:
    """Settings from the environment with command-line overrides applied."""
    update = {k: v for k, v in overrides.items() if v is not None}
    if database:
        update["database_url"] = database
    try:
        settings = get_settings()
        if not update:
            return settings
        return DbAgentSettings.model_validate({**settings.model_dump(), **update})
    except ValidationError as exc:
        fail(ConfigError(f"Invalid settings: {exc}", cause=exc))


def open_store(settings: DbAgentSettings) -> tuple[ScheduleRepository, Any]:
    """Open the schedule store (schema applied) for a CLI command."""
    try:
        conn, _info = create_connection(
            settings.database_url,
            init_schema=True,
            data_dir=settings.data_dir,
        )
    except DbAgentError as exc:
        fail(exc)
    return ScheduleRepository(conn), conn


def fail(error: DbAgentError) -> NoReturn:
    """Print a dbagent error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _format(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return str(value)


def output_item(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single record as key-value pairs (or JSON)."""
    data = _to_dict(obj)
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_format(v)}")


def output_items(
    items: Sequence[Any],
    *,
    as_json: bool = False,
    title: str = "",
    columns: Sequence[str] | None = None,
) -> None:
    """Render records as a Rich table (or a JSON list)."""
    rows = [_to_dict(item) for item in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    cols = list(columns or rows[0].keys())
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(_format(row.get(col)) for col in cols))
    console.print(table)
